"""In-process secure storage, used by tests and the "memory" backend."""
from typing import Dict, List, Optional, Tuple

from facialauth.domain.interfaces.storage import SecureStorage


class InMemorySecureStorage(SecureStorage):
    """Dictionary-backed :class:`SecureStorage`.

    Several instances may share one ``items`` mapping to model namespaces
    living side by side in the same backing store.
    """

    def __init__(self, namespace: str, items: Optional[Dict[Tuple[str, str], bytes]] = None) -> None:
        super().__init__(namespace)
        self._items = items if items is not None else {}

    async def put(self, key: str, value: bytes) -> None:
        self._items[(self.namespace, key)] = bytes(value)

    async def get(self, key: str) -> Optional[bytes]:
        return self._items.get((self.namespace, key))

    async def delete(self, key: str) -> bool:
        return self._items.pop((self.namespace, key), None) is not None

    async def list_keys(self, prefix: str = "") -> List[str]:
        return sorted(
            key for namespace, key in self._items
            if namespace == self.namespace and key.startswith(prefix)
        )
