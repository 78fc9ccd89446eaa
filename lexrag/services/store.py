"""Document / chunk store backed by a local key-value blob table.

State lives in three independent entries of the ``kv_store`` table, each a
whole JSON value that is read, modified and written back inside one
transaction:

  dataset        {documents: [...], chunks: [...]}
  file_contents  {doc_id: {content, metadata}}
  chat_history   [ChatSession, ...]

A missing entry reads as the empty default. An entry that fails schema
validation is logged and also read as the empty default, so the dedup and
cascade rules only ever operate on well-formed records.

The store is synchronous and does no locking: callers serialize their own
read-modify-write sequences.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import Engine
from sqlmodel import Field, Session, SQLModel

from lexrag.core.database import create_db_engine, init_db
from lexrag.core.errors import (
    DocumentNotFoundError,
    DuplicateDocumentError,
    StoreClosedError,
    StoreError,
)
from lexrag.models.base import utcnow
from lexrag.models.chat import ChatSession, session_title
from lexrag.models.chunk import Chunk
from lexrag.models.content import ContentMetadata, StoredContent
from lexrag.models.document import Document, DocumentUpdate
from lexrag.models.kv import KeyValueEntry
from lexrag.models.message import ChatMessage

logger = logging.getLogger(__name__)

DATASET_KEY = "dataset"
CONTENT_KEY = "file_contents"
SESSIONS_KEY = "chat_history"


class Dataset(SQLModel):
    documents: list[Document] = Field(default_factory=list)
    chunks: list[Chunk] = Field(default_factory=list)


_contents_adapter = TypeAdapter(dict[str, StoredContent])
_sessions_adapter = TypeAdapter(list[ChatSession])


class Store:
    """Single source of truth for documents, chunks, content and chat sessions.

    Construct once per application with an engine, call :meth:`open` (or use
    it as a context manager) and pass the instance to whoever needs it.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._open = False

    @classmethod
    def from_url(cls, database_url: str) -> Store:
        return cls(create_db_engine(database_url))

    # ── Lifecycle ────────────────────────────────────────────

    def open(self) -> Store:
        if self._open:
            raise StoreError("Store is already open")
        init_db(self._engine)
        self._open = True
        return self

    def close(self) -> None:
        if not self._open:
            return
        self._engine.dispose()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def __enter__(self) -> Store:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ── Documents ────────────────────────────────────────────

    def list_documents(self) -> list[Document]:
        """All documents, newest ``created_at`` first."""
        with self._transaction() as session:
            documents = self._load_dataset(session).documents
        return sorted(documents, key=lambda d: d.created_at, reverse=True)

    def get_document(self, doc_id: str) -> Document | None:
        with self._transaction() as session:
            dataset = self._load_dataset(session)
        return next((d for d in dataset.documents if d.doc_id == doc_id), None)

    def add_document(self, doc: Document) -> None:
        with self._transaction() as session:
            dataset = self._load_dataset(session)
            if any(d.doc_id == doc.doc_id for d in dataset.documents):
                raise DuplicateDocumentError(doc.doc_id)
            dataset.documents.insert(0, doc)
            self._save_dataset(session, dataset)

    def update_document(
        self,
        doc_id: str,
        update: DocumentUpdate | None = None,
        **fields: Any,
    ) -> Document | None:
        """Merge the given fields into a document.

        Returns the updated document, or None if ``doc_id`` does not exist.
        """
        changes: dict[str, Any] = {}
        if update is not None:
            changes.update(update.model_dump(exclude_unset=True))
        if fields:
            changes.update(DocumentUpdate.model_validate(fields).model_dump(exclude_unset=True))

        with self._transaction() as session:
            dataset = self._load_dataset(session)
            for i, doc in enumerate(dataset.documents):
                if doc.doc_id == doc_id:
                    merged = Document.model_validate({**doc.model_dump(), **changes})
                    dataset.documents[i] = merged
                    self._save_dataset(session, dataset)
                    return merged
        return None

    def remove_document(self, doc_id: str) -> bool:
        """Delete a document together with its chunks and content blob."""
        with self._transaction() as session:
            dataset = self._load_dataset(session)
            remaining = [d for d in dataset.documents if d.doc_id != doc_id]
            if len(remaining) == len(dataset.documents):
                return False

            dataset.documents = remaining
            before = len(dataset.chunks)
            dataset.chunks = [c for c in dataset.chunks if c.doc_id != doc_id]
            self._save_dataset(session, dataset)

            contents = self._load_contents(session)
            if contents.pop(doc_id, None) is not None:
                self._save_contents(session, contents)

        logger.info(
            "Removed document %s (%d chunks)", doc_id, before - len(dataset.chunks)
        )
        return True

    # ── Chunks ───────────────────────────────────────────────

    def list_chunks(self) -> list[Chunk]:
        with self._transaction() as session:
            return self._load_dataset(session).chunks

    def append_chunks(self, chunks: Iterable[Chunk]) -> int:
        """Insert chunks whose ids are not stored yet, in input order.

        Chunks that reference a document which does not exist are rejected.
        Returns the number of chunks inserted.
        """
        with self._transaction() as session:
            dataset = self._load_dataset(session)
            known_docs = {d.doc_id for d in dataset.documents}
            seen = {c.chunk_id for c in dataset.chunks}

            added = 0
            orphans = 0
            for chunk in chunks:
                if chunk.chunk_id in seen:
                    continue
                if chunk.doc_id not in known_docs:
                    orphans += 1
                    continue
                dataset.chunks.append(chunk)
                seen.add(chunk.chunk_id)
                added += 1

            if added:
                self._save_dataset(session, dataset)

        if orphans:
            logger.warning("Rejected %d chunk(s) referencing unknown documents", orphans)
        return added

    def update_chunk_summary(self, chunk_id: str, summary: str) -> Chunk | None:
        with self._transaction() as session:
            dataset = self._load_dataset(session)
            for chunk in dataset.chunks:
                if chunk.chunk_id == chunk_id:
                    chunk.summary = summary
                    self._save_dataset(session, dataset)
                    return chunk
        return None

    def clear_chunks(self) -> None:
        with self._transaction() as session:
            dataset = self._load_dataset(session)
            dataset.chunks = []
            self._save_dataset(session, dataset)

    def export_chunks_json(self) -> str:
        """The chunk table as indented JSON, for download."""
        data = [c.model_dump(mode="json") for c in self.list_chunks()]
        return json.dumps(data, ensure_ascii=False, indent=2)

    # ── Content blobs ────────────────────────────────────────

    def save_content(
        self,
        doc_id: str,
        text: str,
        metadata: ContentMetadata | dict | None = None,
    ) -> None:
        """Store the extracted text of an existing document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        if isinstance(metadata, dict):
            metadata = ContentMetadata.model_validate(metadata)

        with self._transaction() as session:
            dataset = self._load_dataset(session)
            if not any(d.doc_id == doc_id for d in dataset.documents):
                raise DocumentNotFoundError(doc_id)
            contents = self._load_contents(session)
            contents[doc_id] = StoredContent(content=text, metadata=metadata)
            self._save_contents(session, contents)

    def get_content(self, doc_id: str) -> str | None:
        with self._transaction() as session:
            stored = self._load_contents(session).get(doc_id)
        return stored.content if stored else None

    def get_content_metadata(self, doc_id: str) -> ContentMetadata | None:
        with self._transaction() as session:
            stored = self._load_contents(session).get(doc_id)
        return stored.meta if stored else None

    def delete_content(self, doc_id: str) -> bool:
        with self._transaction() as session:
            contents = self._load_contents(session)
            if contents.pop(doc_id, None) is None:
                return False
            self._save_contents(session, contents)
        return True

    # ── Chat sessions ────────────────────────────────────────

    def save_session(self, messages: list[ChatMessage]) -> str:
        """Persist a conversation and return its id ("" when there is nothing to save)."""
        if not messages:
            return ""
        chat = ChatSession(title=session_title(messages), messages=list(messages))
        with self._transaction() as session:
            sessions = self._load_sessions(session)
            sessions.append(chat)
            self._save_sessions(session, sessions)
        return chat.id

    def list_sessions(self) -> list[ChatSession]:
        """All sessions, most recently updated first."""
        with self._transaction() as session:
            sessions = self._load_sessions(session)
        return sorted(sessions, key=lambda s: s.updated_at, reverse=True)

    def get_session(self, session_id: str) -> ChatSession | None:
        with self._transaction() as session:
            sessions = self._load_sessions(session)
        return next((s for s in sessions if s.id == session_id), None)

    def load_session(self, session_id: str) -> list[ChatMessage]:
        chat = self.get_session(session_id)
        return chat.messages if chat else []

    def delete_session(self, session_id: str) -> bool:
        with self._transaction() as session:
            sessions = self._load_sessions(session)
            remaining = [s for s in sessions if s.id != session_id]
            if len(remaining) == len(sessions):
                return False
            self._save_sessions(session, remaining)
        return True

    def clear_sessions(self) -> None:
        with self._transaction() as session:
            entry = session.get(KeyValueEntry, SESSIONS_KEY)
            if entry is not None:
                session.delete(entry)

    # ── Internals ────────────────────────────────────────────

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        if not self._open:
            raise StoreClosedError("Store is not open")
        with Session(self._engine) as session:
            yield session
            session.commit()

    @staticmethod
    def _read(session: Session, key: str) -> str | None:
        entry = session.get(KeyValueEntry, key)
        return entry.value if entry is not None else None

    @staticmethod
    def _write(session: Session, key: str, value: str) -> None:
        entry = session.get(KeyValueEntry, key)
        if entry is None:
            entry = KeyValueEntry(key=key, value=value)
        else:
            entry.value = value
            entry.updated_at = utcnow()
        session.add(entry)

    def _load_dataset(self, session: Session) -> Dataset:
        raw = self._read(session, DATASET_KEY)
        if raw is None:
            return Dataset()
        try:
            return Dataset.model_validate_json(raw)
        except ValidationError:
            logger.warning("Stored %r value is invalid; treating it as empty", DATASET_KEY)
            return Dataset()

    def _save_dataset(self, session: Session, dataset: Dataset) -> None:
        self._write(session, DATASET_KEY, dataset.model_dump_json())

    def _load_contents(self, session: Session) -> dict[str, StoredContent]:
        raw = self._read(session, CONTENT_KEY)
        if raw is None:
            return {}
        try:
            return _contents_adapter.validate_json(raw)
        except ValidationError:
            logger.warning("Stored %r value is invalid; treating it as empty", CONTENT_KEY)
            return {}

    def _save_contents(self, session: Session, contents: dict[str, StoredContent]) -> None:
        raw = _contents_adapter.dump_json(contents, by_alias=True).decode()
        self._write(session, CONTENT_KEY, raw)

    def _load_sessions(self, session: Session) -> list[ChatSession]:
        raw = self._read(session, SESSIONS_KEY)
        if raw is None:
            return []
        try:
            return _sessions_adapter.validate_json(raw)
        except ValidationError:
            logger.warning("Stored %r value is invalid; treating it as empty", SESSIONS_KEY)
            return []

    def _save_sessions(self, session: Session, sessions: list[ChatSession]) -> None:
        self._write(session, SESSIONS_KEY, _sessions_adapter.dump_json(sessions).decode())
