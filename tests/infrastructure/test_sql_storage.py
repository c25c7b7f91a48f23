"""Tests for the SQLAlchemy secure storage adapter."""
import numpy as np
import pytest

from facialauth.infrastructure.database import SqlSecureStorage
from facialauth.services.secure_embeddings import SecureEmbeddingStore


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'secure.db'}"


@pytest.fixture
async def sql_storage(database_url):
    """Provide an initialized storage on a temporary SQLite database."""
    storage = SqlSecureStorage("TestNamespace", database_url)
    await storage.initialize()
    yield storage
    await storage.close()


class TestSqlSecureStorage:
    """Test suite for SQL-backed key-value storage."""

    async def test_put_inserts_then_updates(self, sql_storage):
        await sql_storage.put("key", b"first")
        await sql_storage.put("key", b"second")

        assert await sql_storage.get("key") == b"second"
        assert await sql_storage.list_keys() == ["key"]

    async def test_get_missing(self, sql_storage):
        assert await sql_storage.get("missing") is None

    async def test_delete(self, sql_storage):
        await sql_storage.put("key", b"value")

        assert await sql_storage.delete("key")
        assert not await sql_storage.delete("key")
        assert await sql_storage.get("key") is None

    async def test_list_keys_by_prefix(self, sql_storage):
        for key in ("profile_b", "profile_a", "other"):
            await sql_storage.put(key, b"x")

        assert await sql_storage.list_keys("profile_") == ["profile_a", "profile_b"]
        assert await sql_storage.list_keys() == ["other", "profile_a", "profile_b"]

    async def test_namespaces_share_a_table(self, sql_storage, database_url):
        other = SqlSecureStorage("OtherNamespace", database_url)
        await other.initialize()
        try:
            await sql_storage.put("key", b"ours")
            await other.put("key", b"theirs")

            assert await sql_storage.get("key") == b"ours"
            assert await other.get("key") == b"theirs"
            assert await other.list_keys() == ["key"]
        finally:
            await other.close()

    async def test_values_survive_reopening(self, database_url):
        storage = SqlSecureStorage("TestNamespace", database_url)
        await storage.initialize()
        store = SecureEmbeddingStore(storage)
        embedding = np.linspace(-1, 1, 32, dtype=np.float32)
        await store.save("alice", "Alice", embedding)
        await storage.close()

        reopened = SqlSecureStorage("TestNamespace", database_url)
        await reopened.initialize()
        try:
            loaded = await SecureEmbeddingStore(reopened).load("alice")
            assert loaded.tobytes() == embedding.tobytes()
            assert await SecureEmbeddingStore(reopened).verify_integrity("alice")
        finally:
            await reopened.close()
