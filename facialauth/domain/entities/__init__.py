"""Domain entities package."""
from .face import BoundingBox, DetectedFace, FaceLandmarks
from .profile import UserProfile

__all__ = ["BoundingBox", "DetectedFace", "FaceLandmarks", "UserProfile"]
