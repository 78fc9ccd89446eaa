"""Chat session model: a saved conversation."""

from sqlmodel import Field

from lexrag.models.base import TimestampMixin, new_id
from lexrag.models.message import ChatMessage

DEFAULT_SESSION_TITLE = "New conversation"
TITLE_MAX_LENGTH = 30


class ChatSession(TimestampMixin):
    id: str = Field(default_factory=lambda: new_id("chat"))
    title: str = Field(default=DEFAULT_SESSION_TITLE, max_length=500)
    messages: list[ChatMessage] = Field(default_factory=list)


def session_title(messages: list[ChatMessage]) -> str:
    """Title a session after the start of its first message."""
    first = messages[0].content.strip() if messages else ""
    if not first:
        return DEFAULT_SESSION_TITLE
    if len(first) > TITLE_MAX_LENGTH:
        return first[:TITLE_MAX_LENGTH] + "..."
    return first
