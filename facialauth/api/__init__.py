"""API v1 router initialization."""
from fastapi import APIRouter

from .users import router as users_router

# Create v1 router
router = APIRouter()

# Include user profile management endpoints
router.include_router(
    users_router,
    prefix="/users",
    tags=["users"]
)
