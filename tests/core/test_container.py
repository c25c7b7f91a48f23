"""Tests for the service container and settings."""
import pytest

from conftest import FakeEmbeddingModel
from facialauth.core.config import Settings
from facialauth.core.container import ServiceContainer, create_storage
from facialauth.core.exceptions import ErrorCategory, IntegrityError, ServiceNotInitializedError
from facialauth.infrastructure.database import SqlSecureStorage
from facialauth.infrastructure.storage import InMemorySecureStorage
from facialauth.services.auth_manager import FacialAuthManager


class TestServiceContainer:
    """Test suite for service wiring."""

    async def test_management_only_container(self, test_settings):
        container = ServiceContainer(test_settings)
        await container.initialize()

        assert isinstance(container.storage, InMemorySecureStorage)
        assert container.embedding_store is not None
        assert container.extractor is None
        with pytest.raises(ServiceNotInitializedError):
            await container.load_model()
        with pytest.raises(ServiceNotInitializedError):
            container.create_auth_manager()

        await container.cleanup()
        assert not container.is_initialized

    async def test_builds_auth_manager(self, test_settings, detector):
        container = ServiceContainer(test_settings, detector=detector, model=FakeEmbeddingModel())

        with pytest.raises(ServiceNotInitializedError):
            container.create_auth_manager()

        await container.initialize()
        manager = container.create_auth_manager()

        assert isinstance(manager, FacialAuthManager)
        assert manager.storage is container.storage
        assert container.enrollment_service is not None

    def test_sqlite_backend(self, test_settings, tmp_path):
        config = test_settings.model_copy(update={
            "STORAGE_BACKEND": "sqlite",
            "DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}",
        })

        storage = create_storage(config)

        assert isinstance(storage, SqlSecureStorage)
        assert storage.namespace == config.STORAGE_NAMESPACE


class TestSettings:
    """Test suite for configuration defaults."""

    def test_defaults(self):
        config = Settings(_env_file=None)

        assert config.SIMILARITY_THRESHOLD == 0.85
        assert config.MAX_TRAINING_SAMPLES == 50
        assert config.REQUIRED_CONSECUTIVE_FRAMES == 5
        assert config.FRAME_BUFFER_SIZE == 3
        assert config.RESULT_RESET_DELAY == 2.0
        assert config.CANCEL_RESET_DELAY == 0.5

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("FACIALAUTH_SIMILARITY_THRESHOLD", "0.9")

        assert Settings(_env_file=None).SIMILARITY_THRESHOLD == 0.9

    def test_error_carries_category_and_details(self):
        error = IntegrityError("Hash mismatch", details={"user_id": "alice"})

        assert error.category is ErrorCategory.STORAGE
        assert error.code == "data_corrupted"
        assert error.details == {"user_id": "alice"}
