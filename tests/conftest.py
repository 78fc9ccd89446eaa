"""Shared test fixtures: in-memory SQLite store + test settings."""

from collections.abc import Generator

import pytest

from lexrag.core.config import Settings
from lexrag.models.chunk import Chunk, make_chunk_id
from lexrag.models.document import Document, DocumentStatus
from lexrag.services.store import Store


@pytest.fixture
def store() -> Generator[Store, None, None]:
    with Store.from_url("sqlite://") as st:
        yield st


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        default_llm_model="test-model",
        llm_api_key="",
        enable_fallback_mode=False,
        enable_error_logging=False,
    )


def make_document(filename: str = "report.txt", **kwargs) -> Document:
    kwargs.setdefault("status", DocumentStatus.READY)
    return Document(filename=filename, mime="text/plain", size=100, **kwargs)


def make_chunk(doc: Document, index: int, text: str, summary: str = "") -> Chunk:
    return Chunk(
        chunk_id=make_chunk_id(doc.doc_id, index),
        doc_id=doc.doc_id,
        doc_filename=doc.filename,
        text=text,
        summary=summary,
    )
