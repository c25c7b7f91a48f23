"""Secure key-value storage interface."""
from abc import ABC, abstractmethod
from typing import List, Optional


class SecureStorage(ABC):
    """Namespaced key-value store for opaque byte blobs.

    Every key is scoped to the namespace the store was created with; keys of
    other namespaces are never visible.
    """

    def __init__(self, namespace: str) -> None:
        self.namespace = namespace

    async def initialize(self) -> None:
        """Prepare the backend (create tables, open handles)."""

    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def put(self, key: str, value: bytes) -> None:
        """
        Store ``value`` under ``key``, updating it if it exists else inserting it.

        Raises:
            StorageBackendError: If the write fails
        """
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return the value stored under ``key``, or None."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete ``key``. Returns True if something was deleted."""
        pass

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> List[str]:
        """List keys in this namespace starting with ``prefix``, sorted."""
        pass
