"""Storage interfaces."""
from .secure_storage import SecureStorage

__all__ = ["SecureStorage"]
