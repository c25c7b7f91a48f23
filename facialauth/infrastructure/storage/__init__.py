"""Secure storage adapters package."""
from .memory import InMemorySecureStorage

__all__ = ["InMemorySecureStorage"]
