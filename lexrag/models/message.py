"""Message model: a single turn in a chat session."""

from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from lexrag.models.base import new_id, utcnow


class MessageRole(StrEnum):
    USER = "user"
    AGENT = "agent"


class Citation(SQLModel):
    """A retrieved chunk quoted as evidence for an answer."""
    doc_id: str
    filename: str
    chunk_id: str
    quote: str
    page_no: int = 1


class ChatMessage(SQLModel):
    id: str = Field(default_factory=lambda: new_id("msg"))
    role: MessageRole
    content: str
    citations: list[Citation] = Field(default_factory=list)
    used_tools: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)
