"""User profile entity persisted by the secure embedding store."""
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserProfile(BaseModel):
    """Enrolled user record.

    ``encrypted_embeddings`` always holds the opaque ``key || nonce || ciphertext || tag``
    blob, never a plaintext vector.
    """
    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    user_id: str = Field(..., min_length=1, description="Unique user identifier")
    display_name: str = Field(..., description="Human readable name")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    samples_count: int = Field(1, ge=1, description="Number of enrollments folded into this profile")
    encrypted_embeddings: bytes = Field(..., repr=False)
    integrity_hash: str = Field(..., description="SHA-256 hex digest of encrypted_embeddings")
    schema_version: str = Field("1.0", description="Record layout version")
