"""API specific profile models."""
from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from facialauth.domain.entities.profile import UserProfile


class ProfileResponse(BaseModel):
    """Stored profile metadata. The encrypted embedding is never exposed."""
    user_id: str = Field(..., description="Unique user identifier")
    display_name: str = Field(..., description="Human readable name")
    created_at: datetime
    updated_at: datetime
    samples_count: int = Field(..., description="Enrollments folded into this profile")
    schema_version: str
    integrity_hash: str = Field(..., description="SHA-256 of the encrypted embedding")

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "ProfileResponse":
        return cls(
            user_id=profile.user_id,
            display_name=profile.display_name,
            created_at=profile.created_at,
            updated_at=profile.updated_at,
            samples_count=profile.samples_count,
            schema_version=profile.schema_version,
            integrity_hash=profile.integrity_hash,
        )


class UserListResponse(BaseModel):
    users: List[str] = Field(default_factory=list, description="Registered user IDs, sorted")
    total: int = Field(0, description="Number of registered users")


class IntegrityResponse(BaseModel):
    user_id: str
    intact: bool = Field(..., description="Whether the stored embedding decrypts and matches its hash")
