"""Recognition capability interfaces."""
from .embedding_model import EmbeddingModel
from .face_detection import FaceDetector

__all__ = ["EmbeddingModel", "FaceDetector"]
