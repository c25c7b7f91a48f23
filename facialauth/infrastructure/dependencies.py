"""FastAPI dependency providers."""
from facialauth.core.container import ServiceContainer, container
from facialauth.core.exceptions import ServiceNotInitializedError
from facialauth.services.secure_embeddings import SecureEmbeddingStore


async def get_container() -> ServiceContainer:
    """Dependency provider for the global ServiceContainer instance."""
    if not container.is_initialized:
        try:
            await container.initialize()
        except Exception as e:
            raise ServiceNotInitializedError(f"Service container could not be initialized: {e}") from e
    return container


async def get_embedding_store() -> SecureEmbeddingStore:
    """Provide the initialized secure embedding store.

    Raises:
        ServiceNotInitializedError: If the store is not initialized
    """
    cont = await get_container()
    if cont.embedding_store is None:
        raise ServiceNotInitializedError("Secure embedding store not initialized")
    return cont.embedding_store
