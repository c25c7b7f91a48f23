"""Management HTTP service for enrolled facial authentication profiles."""
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from facialauth.api import router as users_api
from facialauth.core.config import settings
from facialauth.core.container import container
from facialauth.core.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)

# Profile management never runs recognition, so the model stays unloaded
container.config = settings.model_copy(update={"RECOGNITION_BACKEND": "none"})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Profile service starting", version=settings.VERSION, environment=settings.ENVIRONMENT)
    await container.initialize()
    try:
        yield
    finally:
        await container.cleanup()
        logger.info("Profile service stopped")


app = FastAPI(
    title=f"{settings.PROJECT_NAME} profiles",
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan,
)
app.include_router(users_api, prefix=settings.API_V1_STR)


@app.get("/health")
async def health_check() -> dict:
    """Report liveness and whether the profile store is open."""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "storage_ready": container.is_initialized,
    }
