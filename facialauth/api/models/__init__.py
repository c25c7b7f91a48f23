"""API models package."""
from .profile import IntegrityResponse, ProfileResponse, UserListResponse

__all__ = ["IntegrityResponse", "ProfileResponse", "UserListResponse"]
