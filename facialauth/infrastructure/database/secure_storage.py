"""SQLAlchemy implementation of the secure key-value store."""
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from facialauth.core.exceptions import StorageBackendError
from facialauth.core.logging import get_logger
from facialauth.domain.entities.profile import utcnow
from facialauth.domain.interfaces.storage import SecureStorage
from facialauth.infrastructure.database.models import Base, SecureItem
from facialauth.infrastructure.database.session import (
    create_engine,
    create_session_factory,
    session_scope
)

logger = get_logger(__name__)


class SqlSecureStorage(SecureStorage):
    """Secure storage over one ``secure_items`` table keyed by (namespace, key).

    Values are stored as given; confidentiality comes from the callers
    encrypting before ``put``.
    """

    def __init__(self, namespace: str, database_url: str, echo: bool = False) -> None:
        super().__init__(namespace)
        self.database_url = database_url
        self._engine: AsyncEngine = create_engine(database_url, echo=echo)
        self._session_factory = create_session_factory(self._engine)

    async def initialize(self) -> None:
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageBackendError(
                "Failed to initialize secure storage",
                details={"cause": str(e)}
            ) from e
        logger.info("Secure storage ready", namespace=self.namespace)

    async def close(self) -> None:
        await self._engine.dispose()

    async def put(self, key: str, value: bytes) -> None:
        try:
            async with session_scope(self._session_factory) as session:
                item = await session.get(SecureItem, (self.namespace, key))
                if item is None:
                    session.add(SecureItem(namespace=self.namespace, key=key, value=value))
                else:
                    item.value = value
                    item.updated_at = utcnow()
        except SQLAlchemyError as e:
            raise StorageBackendError(
                "Failed to write secure item",
                details={"key": key, "cause": str(e)}
            ) from e

    async def get(self, key: str) -> Optional[bytes]:
        try:
            async with session_scope(self._session_factory) as session:
                item = await session.get(SecureItem, (self.namespace, key))
                return None if item is None else item.value
        except SQLAlchemyError as e:
            raise StorageBackendError(
                "Failed to read secure item",
                details={"key": key, "cause": str(e)}
            ) from e

    async def delete(self, key: str) -> bool:
        stmt = delete(SecureItem).where(
            SecureItem.namespace == self.namespace,
            SecureItem.key == key
        )
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(stmt)
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StorageBackendError(
                "Failed to delete secure item",
                details={"key": key, "cause": str(e)}
            ) from e

    async def list_keys(self, prefix: str = "") -> List[str]:
        stmt = (
            select(SecureItem.key)
            .where(SecureItem.namespace == self.namespace)
            .order_by(SecureItem.key)
        )
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(stmt)
                keys = result.scalars().all()
        except SQLAlchemyError as e:
            raise StorageBackendError(
                "Failed to list secure items",
                details={"cause": str(e)}
            ) from e
        return [key for key in keys if key.startswith(prefix)]
