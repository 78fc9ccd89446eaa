"""Raw extracted content of a document, stored apart from the dataset."""

from sqlmodel import Field, SQLModel


class ContentMetadata(SQLModel):
    title: str | None = None
    author: str | None = None
    pages: int | None = None


class StoredContent(SQLModel):
    content: str
    # Persisted as "metadata"; the attribute name would shadow SQLModel.metadata
    meta: ContentMetadata | None = Field(default=None, alias="metadata")
