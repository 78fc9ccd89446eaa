"""Import all models so SQLModel.metadata picks up the table definitions."""

from lexrag.models.chat import ChatSession
from lexrag.models.chunk import Chunk, make_chunk_id
from lexrag.models.content import ContentMetadata, StoredContent
from lexrag.models.document import Document, DocumentStatus, DocumentUpdate
from lexrag.models.kv import KeyValueEntry
from lexrag.models.message import ChatMessage, Citation, MessageRole

__all__ = [
    "ChatMessage",
    "ChatSession",
    "Chunk",
    "Citation",
    "ContentMetadata",
    "Document",
    "DocumentStatus",
    "DocumentUpdate",
    "KeyValueEntry",
    "MessageRole",
    "StoredContent",
    "make_chunk_id",
]
