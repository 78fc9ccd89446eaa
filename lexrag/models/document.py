"""Document model: the identity record of one uploaded file."""

from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from lexrag.models.base import new_id, utcnow


class DocumentStatus(StrEnum):
    QUEUED = "queued"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class Document(SQLModel):
    doc_id: str = Field(default_factory=lambda: new_id("doc"), min_length=1)
    filename: str = Field(max_length=500)
    mime: str = Field(default="", max_length=255)
    size: int = Field(default=0, ge=0)
    status: DocumentStatus = Field(default=DocumentStatus.QUEUED)
    created_at: datetime = Field(default_factory=utcnow)
    version: int = Field(default=1, ge=1)


# ── Pydantic schemas ─────────────────────────────────────────

class DocumentUpdate(SQLModel):
    filename: str | None = Field(default=None, max_length=500)
    mime: str | None = Field(default=None, max_length=255)
    size: int | None = Field(default=None, ge=0)
    status: DocumentStatus | None = None
    version: int | None = Field(default=None, ge=1)
