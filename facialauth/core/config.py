"""Configuration settings for the facial authentication framework."""
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Framework settings.

    These settings are loaded from environment variables with the following precedence:
    1. Environment variables
    2. .env file
    3. Default values

    Attributes:
        SIMILARITY_THRESHOLD: Minimum cosine similarity for a successful match (-1 to 1)
        MAX_TRAINING_SAMPLES: Frames captured before an enrollment is processed
        SESSION_TIMEOUT: Seconds allowed for a whole enrollment/authentication attempt
    """
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="FACIALAUTH_",
    )

    # Core Settings
    PROJECT_NAME: str = "Facial Auth Framework"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Authentication
    SIMILARITY_THRESHOLD: float = 0.85
    MAX_ATTEMPTS: int = 3
    SESSION_TIMEOUT: float = 300.0
    LOG_METRICS: bool = False

    # Enrollment
    MAX_TRAINING_SAMPLES: int = 50
    MIN_VALID_SAMPLES: int = 3
    TRAINING_MODE: Literal["fast", "standard", "deep"] = "standard"
    TRAINING_EPOCH_DELAY: float = 0.0  # seconds between reported epochs

    # Frame admission
    PROCESSING_INTERVAL: float = 0.1  # 10 FPS ceiling
    FRAME_BUFFER_SIZE: int = 3
    REQUIRED_CONSECUTIVE_FRAMES: int = 5
    DETECTION_INTERVAL: float = 0.1

    # Auto-capture requirements
    CAPTURE_MIN_QUALITY: float = 0.8
    CAPTURE_MIN_CONFIDENCE: float = 0.7
    CAPTURE_REQUIRE_CENTERED: bool = True

    # Face quality validation (fractions of the frame)
    MIN_FACE_SIZE: float = 0.15
    MAX_FACE_SIZE: float = 0.8
    MIN_DETECTION_CONFIDENCE: float = 0.7
    MAX_CENTER_DISTANCE: float = 0.3

    # Embedding extraction
    MIN_IMAGE_RESOLUTION: int = 224

    # Orchestrator delays before returning to cameraReady
    RESULT_RESET_DELAY: float = 2.0
    CANCEL_RESET_DELAY: float = 0.5

    # Secure storage
    STORAGE_BACKEND: Literal["sqlite", "memory"] = "sqlite"
    DATABASE_URL: str = "sqlite+aiosqlite:///./facialauth.db"
    STORAGE_NAMESPACE: str = "FacialAuthFramework"
    SCHEMA_VERSION: str = "1.0"

    # Recognition backend
    RECOGNITION_BACKEND: Literal["insightface", "none"] = "insightface"
    MODEL_NAME: str = "buffalo_l"
    MODEL_CACHE_DIR: str = ".model_cache"


settings = Settings()
