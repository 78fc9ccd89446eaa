"""Chunk model: an indexed text fragment of a Document."""

from sqlmodel import Field, SQLModel

# Upper bound on a stored fragment; larger ones are rejected at validation time
MAX_CHUNK_TEXT_LENGTH = 20_000


def make_chunk_id(doc_id: str, index: int) -> str:
    """Deterministic chunk id scoped by the owning document."""
    return f"{doc_id}-chunk-{index}"


class Chunk(SQLModel):
    chunk_id: str = Field(min_length=1)
    doc_id: str = Field(min_length=1)
    doc_filename: str = ""
    text: str = Field(min_length=1, max_length=MAX_CHUNK_TEXT_LENGTH)

    # Keyword annotation attached by the enrichment step
    summary: str = ""
