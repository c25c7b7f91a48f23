"""Embedding blob encryption."""
from .cipher import (
    decrypt_blob,
    deserialize_embedding,
    encrypt_blob,
    integrity_hash,
    serialize_embedding,
)

__all__ = [
    "decrypt_blob",
    "deserialize_embedding",
    "encrypt_blob",
    "integrity_hash",
    "serialize_embedding",
]
