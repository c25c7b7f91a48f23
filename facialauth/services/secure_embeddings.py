"""Encrypted persistence of master embeddings."""
from typing import List, Optional

import numpy as np
from pydantic import ValidationError

from facialauth.core.exceptions import (
    DecryptionError,
    IntegrityError,
    InvalidDataError,
    UserNotRegisteredError,
)
from facialauth.core.logging import get_logger
from facialauth.domain.entities.profile import UserProfile, utcnow
from facialauth.domain.interfaces.storage import SecureStorage
from facialauth.infrastructure.security import (
    decrypt_blob,
    deserialize_embedding,
    encrypt_blob,
    integrity_hash,
    serialize_embedding,
)

logger = get_logger(__name__)

PROFILE_KEY_PREFIX = "profile_"


def profile_key(user_id: str) -> str:
    return f"{PROFILE_KEY_PREFIX}{user_id}"


class SecureEmbeddingStore:
    """Stores one encrypted master embedding per user.

    Each profile record is JSON with the ``key || nonce || ciphertext || tag``
    blob base64-encoded. Plaintext vectors only exist transiently inside
    :meth:`load`.
    """

    def __init__(self, storage: SecureStorage, schema_version: str = "1.0") -> None:
        self.storage = storage
        self.schema_version = schema_version

    async def save(self, user_id: str, display_name: str, embedding: np.ndarray) -> UserProfile:
        """
        Encrypt and persist ``embedding`` for ``user_id``.

        Re-saving an existing user keeps its display name and creation time
        and increments ``samples_count``.

        Raises:
            InvalidDataError: If the embedding is not a non-empty 1-D vector of finite
                values that float32 holds exactly
            EncryptionError: If encryption fails
            StorageBackendError: If the backend write fails
        """
        blob = encrypt_blob(serialize_embedding(embedding))
        now = utcnow()

        existing = await self.get_profile(user_id)
        if existing is None:
            profile = UserProfile(
                user_id=user_id,
                display_name=display_name,
                created_at=now,
                updated_at=now,
                samples_count=1,
                encrypted_embeddings=blob,
                integrity_hash=integrity_hash(blob),
                schema_version=self.schema_version,
            )
        else:
            profile = existing.model_copy(update={
                "updated_at": now,
                "samples_count": existing.samples_count + 1,
                "encrypted_embeddings": blob,
                "integrity_hash": integrity_hash(blob),
                "schema_version": self.schema_version,
            })

        await self.storage.put(profile_key(user_id), profile.model_dump_json().encode("utf-8"))
        logger.info(
            "Profile saved",
            user_id=user_id,
            samples_count=profile.samples_count,
            dimension=int(np.asarray(embedding).size),
        )
        return profile

    async def load(self, user_id: str) -> np.ndarray:
        """
        Decrypt and return the stored embedding for ``user_id``.

        Raises:
            UserNotRegisteredError: If no profile exists
            InvalidDataError: If the record or blob is malformed
            IntegrityError: If the blob does not match its recorded hash
            DecryptionError: If the blob fails authentication
        """
        profile = await self.get_profile(user_id)
        if profile is None:
            raise UserNotRegisteredError(
                f"User not registered: {user_id}",
                details={"user_id": user_id}
            )
        self._check_hash(profile)
        return deserialize_embedding(decrypt_blob(profile.encrypted_embeddings))

    async def verify_integrity(self, user_id: str) -> bool:
        """Report whether the stored profile is intact without returning plaintext."""
        try:
            profile = await self.get_profile(user_id)
            if profile is None:
                return False
            self._check_hash(profile)
            decrypt_blob(profile.encrypted_embeddings)
        except (InvalidDataError, IntegrityError, DecryptionError) as e:
            logger.warning("Integrity check failed", user_id=user_id, code=e.code, error=str(e))
            return False
        return True

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        """
        Return the stored record for ``user_id`` without decrypting it.

        Raises:
            InvalidDataError: If the stored record cannot be parsed
        """
        raw = await self.storage.get(profile_key(user_id))
        if raw is None:
            return None
        try:
            return UserProfile.model_validate_json(raw)
        except ValidationError as e:
            raise InvalidDataError(
                "Stored profile record is malformed",
                details={"user_id": user_id, "errors": e.error_count()}
            ) from e

    async def exists(self, user_id: str) -> bool:
        return await self.storage.get(profile_key(user_id)) is not None

    async def delete(self, user_id: str) -> None:
        """
        Remove the profile for ``user_id``.

        Raises:
            UserNotRegisteredError: If no profile exists
        """
        if not await self.storage.delete(profile_key(user_id)):
            raise UserNotRegisteredError(
                f"User not registered: {user_id}",
                details={"user_id": user_id}
            )
        logger.info("Profile deleted", user_id=user_id)

    async def list_users(self) -> List[str]:
        keys = await self.storage.list_keys(PROFILE_KEY_PREFIX)
        return [key[len(PROFILE_KEY_PREFIX):] for key in keys]

    async def clear_all(self) -> int:
        """Delete every profile in the namespace and return how many were removed."""
        removed = 0
        for key in await self.storage.list_keys(PROFILE_KEY_PREFIX):
            if await self.storage.delete(key):
                removed += 1
        logger.info("All profiles cleared", removed=removed)
        return removed

    @staticmethod
    def _check_hash(profile: UserProfile) -> None:
        if integrity_hash(profile.encrypted_embeddings) != profile.integrity_hash:
            raise IntegrityError(
                "Stored embedding does not match its integrity hash",
                details={"user_id": profile.user_id}
            )
