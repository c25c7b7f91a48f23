"""SQLAlchemy models for the secure key-value store."""
from datetime import datetime

from sqlalchemy import DateTime, LargeBinary, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from facialauth.domain.entities.profile import utcnow


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class SecureItem(Base):
    """One opaque value stored under (namespace, key)."""

    __tablename__ = "secure_items"

    namespace: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Owning application namespace"
    )
    key: Mapped[str] = mapped_column(
        String(255),
        primary_key=True
    )
    value: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
        comment="Opaque blob, never interpreted by the store"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow
    )
