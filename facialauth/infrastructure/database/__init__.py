"""SQL-backed secure storage package."""
from .secure_storage import SqlSecureStorage

__all__ = ["SqlSecureStorage"]
