"""Capability interfaces package."""
from .recognition import EmbeddingModel, FaceDetector
from .storage import SecureStorage

__all__ = ["EmbeddingModel", "FaceDetector", "SecureStorage"]
