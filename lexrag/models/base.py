"""Shared base fields for all models."""

import uuid
from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Return an opaque, unique identifier such as ``doc-3f2c...``."""
    return f"{prefix}-{uuid.uuid4().hex}"


class TimestampMixin(SQLModel):
    """Created / updated timestamps."""

    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)
