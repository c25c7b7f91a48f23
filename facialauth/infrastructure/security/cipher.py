"""Authenticated encryption of embedding blobs.

Blob layout: ``key(32) || nonce(12) || ciphertext || tag(16)`` under AES-256-GCM.
Embeddings are serialized as little-endian float32.
"""
import hashlib
import os

import numpy as np
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from facialauth.core.exceptions import DecryptionError, EncryptionError, InvalidDataError

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
MIN_BLOB_SIZE = KEY_SIZE + NONCE_SIZE + TAG_SIZE

FLOAT_DTYPE = np.dtype("<f4")


def serialize_embedding(embedding: np.ndarray) -> bytes:
    vector = np.asarray(embedding)
    if vector.ndim != 1 or vector.size == 0:
        raise InvalidDataError(
            "Embedding must be a non-empty 1-D vector",
            details={"shape": list(vector.shape)},
        )
    if vector.dtype.kind not in "iuf" or not np.all(np.isfinite(vector)):
        raise InvalidDataError("Embedding must hold finite numbers only")

    with np.errstate(over="ignore"):
        narrowed = vector.astype(FLOAT_DTYPE)
    # Lossy narrowing is rejected so a load returns exactly what was saved
    if vector.dtype != FLOAT_DTYPE and not np.array_equal(narrowed.astype(vector.dtype), vector):
        raise InvalidDataError(
            "Embedding values are not exactly representable as float32",
            details={"dtype": str(vector.dtype)},
        )
    return narrowed.tobytes()


def deserialize_embedding(data: bytes) -> np.ndarray:
    if not data or len(data) % FLOAT_DTYPE.itemsize:
        raise InvalidDataError(
            "Embedding payload is not a whole number of float32 values",
            details={"length": len(data)},
        )
    return np.frombuffer(data, dtype=FLOAT_DTYPE).astype(np.float32)


def encrypt_blob(plaintext: bytes) -> bytes:
    """Encrypt ``plaintext`` under a freshly generated key and return the full blob."""
    try:
        key = AESGCM.generate_key(bit_length=KEY_SIZE * 8)
        nonce = os.urandom(NONCE_SIZE)
        sealed = AESGCM(key).encrypt(nonce, plaintext, None)
    except (TypeError, ValueError) as e:
        raise EncryptionError("Failed to encrypt embedding", details={"cause": str(e)}) from e
    return key + nonce + sealed


def decrypt_blob(blob: bytes) -> bytes:
    """
    Split ``blob`` into key, nonce and sealed box and decrypt it.

    Raises:
        InvalidDataError: If the blob is too short to hold a sealed box
        DecryptionError: If authentication fails
    """
    if len(blob) < MIN_BLOB_SIZE:
        raise InvalidDataError(
            "Encrypted blob is too short",
            details={"length": len(blob), "minimum": MIN_BLOB_SIZE},
        )

    key = blob[:KEY_SIZE]
    nonce = blob[KEY_SIZE:KEY_SIZE + NONCE_SIZE]
    sealed = blob[KEY_SIZE + NONCE_SIZE:]
    try:
        return AESGCM(key).decrypt(nonce, sealed, None)
    except InvalidTag as e:
        raise DecryptionError("Encrypted blob failed authentication") from e


def integrity_hash(blob: bytes) -> str:
    return hashlib.sha256(blob).hexdigest()
