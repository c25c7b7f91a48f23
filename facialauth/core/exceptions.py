"""Custom exceptions for the facial authentication framework."""
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Broad failure classes used to decide how an error is surfaced."""
    CONFIGURATION = "configuration"
    PERMISSION = "permission"
    INPUT = "input"
    CAPTURE = "capture"
    COMPARISON = "comparison"
    STORAGE = "storage"
    CONCURRENCY = "concurrency"
    STATE = "state"


class FacialAuthError(Exception):
    """Base exception for facial authentication operations."""

    category: ErrorCategory = ErrorCategory.STATE
    code: str = "unknown_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize facial authentication error.

        Args:
            message: Error description
            details: Additional error context
        """
        super().__init__(message)
        self.details = details or {}


# Configuration

class ModelNotLoadedError(FacialAuthError):
    """Raised when inference is requested before the embedding model is loaded."""
    category = ErrorCategory.CONFIGURATION
    code = "model_not_loaded"


class ModelLoadError(FacialAuthError):
    """Raised when the embedding model is missing or fails to load."""
    category = ErrorCategory.CONFIGURATION
    code = "model_loading_failed"


class ServiceNotInitializedError(FacialAuthError):
    """Raised when a service is requested before the container has built it."""
    category = ErrorCategory.CONFIGURATION
    code = "service_not_initialized"


# Permission

class CameraPermissionDeniedError(FacialAuthError):
    """Raised when access to the camera has been refused."""
    category = ErrorCategory.PERMISSION
    code = "camera_permission_denied"


# Input

class InvalidUserIdError(FacialAuthError):
    """Raised when a user id is empty or blank."""
    category = ErrorCategory.INPUT
    code = "invalid_user_id"


class InvalidImageError(FacialAuthError):
    """Raised when the provided image is invalid, undecodable or too small."""
    category = ErrorCategory.INPUT
    code = "invalid_image"


class InvalidEmbeddingError(FacialAuthError):
    """Raised when an embedding is not a finite one-dimensional vector."""
    category = ErrorCategory.INPUT
    code = "invalid_embedding"


class DimensionMismatchError(FacialAuthError):
    """Raised when embeddings of different lengths are combined."""
    category = ErrorCategory.INPUT
    code = "dimension_mismatch"


class EmptyEmbeddingsError(FacialAuthError):
    """Raised when an embedding, or a set of embeddings, is empty."""
    category = ErrorCategory.INPUT
    code = "empty_embeddings"


class ZeroNormError(FacialAuthError):
    """Raised when a comparison involves a vector with zero norm."""
    category = ErrorCategory.INPUT
    code = "zero_norm"


class InsufficientValidDataError(FacialAuthError):
    """Raised when too few enrollment samples pass quality screening."""
    category = ErrorCategory.INPUT
    code = "insufficient_valid_data"


class EmbeddingExtractionError(FacialAuthError):
    """Raised when one item of a batch extraction fails."""
    category = ErrorCategory.INPUT
    code = "extraction_failed"

    def __init__(self, message: str, index: int, details: Optional[dict] = None):
        super().__init__(message, details)
        self.index = index


# Capture

class NoFaceDetectedError(FacialAuthError):
    """Raised when no face is detected in an image that requires one."""
    category = ErrorCategory.CAPTURE
    code = "face_not_detected"


# Comparison

class SimilarityThresholdNotMetError(FacialAuthError):
    """Raised when a captured face does not match the stored profile."""
    category = ErrorCategory.COMPARISON
    code = "similarity_threshold_not_met"


# Storage

class StorageError(FacialAuthError):
    """Base exception for secure storage operations."""
    category = ErrorCategory.STORAGE
    code = "storage_error"


class UserNotRegisteredError(StorageError):
    """Raised when no profile exists for the requested user."""
    code = "user_not_registered"


class ProfileAlreadyExistsError(StorageError):
    """Raised when registering a user that already has a profile."""
    code = "profile_already_exists"


class InvalidDataError(StorageError):
    """Raised when a stored record or blob has an unexpected layout."""
    code = "invalid_data"


class EncryptionError(StorageError):
    """Raised when an embedding cannot be encrypted."""
    code = "encryption_failed"


class DecryptionError(StorageError):
    """Raised when a blob fails authenticated decryption."""
    code = "decryption_failed"


class IntegrityError(StorageError):
    """Raised when a stored blob does not match its integrity hash."""
    code = "data_corrupted"


class StorageBackendError(StorageError):
    """Raised when the underlying key-value store fails."""
    code = "storage_backend_error"


# Concurrency

class OperationInProgressError(FacialAuthError):
    """Raised when an operation is started while another one is active."""
    category = ErrorCategory.CONCURRENCY
    code = "operation_in_progress"


class TrainingInProgressError(FacialAuthError):
    """Raised when an enrollment run is started while one is already running."""
    category = ErrorCategory.CONCURRENCY
    code = "already_training"


# Session state

class CameraUnavailableError(FacialAuthError):
    """Raised when an operation is requested before the camera is ready."""
    category = ErrorCategory.STATE
    code = "camera_unavailable"


class SessionTimeoutError(FacialAuthError):
    """Raised when an operation exceeds the session timeout."""
    category = ErrorCategory.STATE
    code = "session_timeout"


class MaxAttemptsExceededError(FacialAuthError):
    """Raised when a user has exhausted their authentication attempts."""
    category = ErrorCategory.STATE
    code = "max_attempts_exceeded"


class ProcessingFailedError(FacialAuthError):
    """Raised when an operation fails for a reason without a more specific type."""
    category = ErrorCategory.STATE
    code = "processing_failed"
