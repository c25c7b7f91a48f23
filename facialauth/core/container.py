"""Service container for dependency injection."""
from typing import Optional

from facialauth.core.config import Settings, settings as default_settings
from facialauth.core.exceptions import ServiceNotInitializedError
from facialauth.core.logging import get_logger
from facialauth.domain.interfaces.recognition import EmbeddingModel, FaceDetector
from facialauth.domain.interfaces.storage import SecureStorage
from facialauth.infrastructure.database import SqlSecureStorage
from facialauth.infrastructure.storage import InMemorySecureStorage
from facialauth.services.auth_manager import FacialAuthManager
from facialauth.services.comparator import EmbeddingComparator
from facialauth.services.embedding_extractor import FaceEmbeddingExtractor
from facialauth.services.enrollment import EnrollmentService
from facialauth.services.secure_embeddings import SecureEmbeddingStore

logger = get_logger(__name__)


def create_storage(config: Settings) -> SecureStorage:
    if config.STORAGE_BACKEND == "memory":
        return InMemorySecureStorage(config.STORAGE_NAMESPACE)
    return SqlSecureStorage(
        config.STORAGE_NAMESPACE,
        config.DATABASE_URL,
        echo=config.ENVIRONMENT == "development" and config.LOG_LEVEL == "DEBUG",
    )


class ServiceContainer:
    """Container for application services.

    Builds the storage adapter and, when a recognition backend is configured,
    the model-dependent services. Management surfaces that only read profiles
    work with ``RECOGNITION_BACKEND="none"``.

    Example:
        ```python
        container = ServiceContainer()
        await container.initialize()

        users = await container.embedding_store.list_users()
        manager = container.create_auth_manager()
        ```
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        storage: Optional[SecureStorage] = None,
        detector: Optional[FaceDetector] = None,
        model: Optional[EmbeddingModel] = None,
    ) -> None:
        self.config = config or default_settings

        # Capabilities may be injected; otherwise built from configuration
        self.storage: Optional[SecureStorage] = storage
        self.detector: Optional[FaceDetector] = detector
        self.model: Optional[EmbeddingModel] = model

        self.embedding_store: Optional[SecureEmbeddingStore] = None
        self.comparator: Optional[EmbeddingComparator] = None
        self.extractor: Optional[FaceEmbeddingExtractor] = None
        self.enrollment_service: Optional[EnrollmentService] = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize all services in the correct order."""
        if self._initialized:
            return

        if self.storage is None:
            self.storage = create_storage(self.config)
        await self.storage.initialize()
        self.embedding_store = SecureEmbeddingStore(self.storage, schema_version=self.config.SCHEMA_VERSION)
        self.comparator = EmbeddingComparator(self.config.SIMILARITY_THRESHOLD)

        if self.model is None and self.config.RECOGNITION_BACKEND == "insightface":
            # Imported here so the management surfaces run without the model libraries
            from facialauth.services.recognition.insight_face import InsightFaceBackend

            backend = InsightFaceBackend.from_settings(self.config)
            self.model = backend
            self.detector = self.detector or backend

        if self.model is not None:
            self.extractor = FaceEmbeddingExtractor(self.model, min_resolution=self.config.MIN_IMAGE_RESOLUTION)
            self.enrollment_service = EnrollmentService.from_settings(self.extractor, config=self.config)

        self._initialized = True
        logger.info(
            "Initialized services",
            storage=type(self.storage).__name__,
            recognition=type(self.model).__name__ if self.model is not None else None,
        )

    async def load_model(self) -> EmbeddingModel:
        """
        Load the embedding model on first use.

        Raises:
            ServiceNotInitializedError: If no recognition backend is configured
        """
        if self.model is None:
            raise ServiceNotInitializedError("No recognition backend configured")
        if not self.model.is_loaded:
            await self.model.load()
        return self.model

    def create_auth_manager(self) -> FacialAuthManager:
        """
        Build a session manager sharing this container's capabilities.

        Raises:
            ServiceNotInitializedError: If the container or recognition backend is missing
        """
        if not self._initialized or self.storage is None:
            raise ServiceNotInitializedError("Service container is not initialized")
        if self.detector is None or self.model is None:
            raise ServiceNotInitializedError("No recognition backend configured")
        return FacialAuthManager(self.detector, self.model, self.storage, config=self.config)

    async def cleanup(self) -> None:
        """Cleanup all services in reverse order of initialization."""
        self.enrollment_service = None
        self.extractor = None
        self.comparator = None
        self.embedding_store = None

        if self.storage is not None:
            await self.storage.close()
        self._initialized = False


# Global container instance
container = ServiceContainer()
