"""Ingestion tasks: upload documents and build the chunk dataset from them."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from lexrag.core.config import Settings, get_settings
from lexrag.core.errors import (
    DocumentNotFoundError,
    DocumentProcessingError,
    ErrorLog,
    ErrorType,
    ExtractionError,
    LexragError,
)
from lexrag.models.chunk import Chunk, make_chunk_id
from lexrag.models.document import Document, DocumentStatus
from lexrag.services.chunking import ChunkOptions, chunk_text
from lexrag.services.enrichment import annotate_chunk
from lexrag.services.extract import extract_document, resolve_mime
from lexrag.services.fallback import FallbackService
from lexrag.services.store import Store

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


@dataclass
class SkippedDocument:
    doc_id: str
    filename: str
    reason: str


@dataclass
class DatasetBuildResult:
    """Outcome of a dataset build: chunks added plus the documents passed over."""
    count: int = 0
    skipped: list[SkippedDocument] = field(default_factory=list)


class _DocumentSkipped(Exception):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def upload_document(
    store: Store,
    filename: str,
    content: bytes,
    mime: str | None = None,
    settings: Settings | None = None,
    error_log: ErrorLog | None = None,
) -> Document:
    """Register a document, extract its text and store it.

    The document moves queued → processing → ready, or → error when the file
    cannot be parsed.

    Raises:
        DocumentProcessingError: With the filename attached, if extraction failed.
    """
    settings = settings or get_settings()
    doc = Document(
        filename=filename,
        mime=mime or resolve_mime(filename),
        size=len(content),
    )
    store.add_document(doc)
    store.update_document(doc.doc_id, status=DocumentStatus.PROCESSING)

    try:
        if len(content) > settings.max_file_size:
            raise ExtractionError(
                f"File exceeds the {settings.max_file_size} byte limit", filename=filename
            )
        parsed = extract_document(
            filename, content, mime, min_chars=settings.min_extracted_chars
        )
        store.save_content(doc.doc_id, parsed.text, parsed.metadata)
    except ExtractionError as exc:
        store.update_document(doc.doc_id, status=DocumentStatus.ERROR)
        logger.warning("Upload of %s failed: %s", filename, exc)
        if error_log is not None:
            error_log.log_error(
                exc, ErrorType.DOCUMENT_PROCESSING_FAILED, {"filename": filename}
            )
        raise DocumentProcessingError(filename, str(exc)) from exc

    updated = store.update_document(doc.doc_id, status=DocumentStatus.READY)
    logger.info("Uploaded %s as %s (%d bytes)", filename, doc.doc_id, len(content))
    return updated or doc


def delete_document(store: Store, doc_id: str) -> None:
    """Delete a document with its chunks and content.

    Raises:
        DocumentNotFoundError: If there is no such document.
    """
    if not store.remove_document(doc_id):
        raise DocumentNotFoundError(doc_id)


def export_document_text(store: Store, doc_id: str) -> tuple[str, str]:
    """Return ``(download_filename, text)`` for a document's extracted content."""
    doc = store.get_document(doc_id)
    if doc is None:
        raise DocumentNotFoundError(doc_id)
    content = store.get_content(doc_id)
    if content is None:
        raise LexragError(f"No extracted content stored for {doc.filename}")
    return f"{Path(doc.filename).stem}.txt", content


async def build_dataset(
    store: Store,
    on_progress: ProgressCallback | None = None,
    *,
    rebuild: bool = False,
    settings: Settings | None = None,
    error_log: ErrorLog | None = None,
    fallback: FallbackService | None = None,
) -> DatasetBuildResult:
    """Chunk and annotate every document that has no chunks yet.

    With ``rebuild=True`` all chunks are cleared first and every document is
    processed again. A document that cannot be processed is skipped with a
    reason; the build carries on with the rest.
    """
    settings = settings or get_settings()
    progress = on_progress or _log_progress
    if settings.enable_fallback_mode and fallback is None:
        fallback = FallbackService()

    if rebuild:
        progress("Clearing existing QA data...")
        store.clear_chunks()

    indexed = {c.doc_id for c in store.list_chunks()}
    pending = [d for d in store.list_documents() if d.doc_id not in indexed]

    result = DatasetBuildResult()
    if not pending:
        progress("All documents are already processed. Upload new documents to extend the dataset.")
        return result

    progress(f"Processing {len(pending)} document(s)...")
    options = ChunkOptions(
        max_chunk_size=settings.max_chunk_size,
        min_chunk_size=settings.min_chunk_size,
        overlap=settings.chunk_overlap,
    )

    for doc in pending:
        progress(f"Processing '{doc.filename}'...")
        try:
            added = await _index_document(
                store, doc, options, settings, progress, error_log, fallback
            )
        except _DocumentSkipped as skip:
            progress(f"Skipping '{doc.filename}': {skip.reason}")
            result.skipped.append(
                SkippedDocument(doc_id=doc.doc_id, filename=doc.filename, reason=skip.reason)
            )
            continue
        result.count += added
        progress(f"Added {added} chunk(s) from '{doc.filename}' to the dataset.")

    progress(f"Done! {result.count} new chunk(s) added to the dataset.")
    logger.info(
        "Dataset build finished: %d chunks added, %d document(s) skipped",
        result.count,
        len(result.skipped),
    )
    return result


async def rebuild_dataset(
    store: Store,
    on_progress: ProgressCallback | None = None,
    **kwargs,
) -> DatasetBuildResult:
    """Clear all chunks and rebuild the dataset from every document."""
    return await build_dataset(store, on_progress, rebuild=True, **kwargs)


async def _index_document(
    store: Store,
    doc: Document,
    options: ChunkOptions,
    settings: Settings,
    progress: ProgressCallback,
    error_log: ErrorLog | None,
    fallback: FallbackService | None,
) -> int:
    if doc.status != DocumentStatus.READY:
        raise _DocumentSkipped(f"document is not ready (status: {doc.status})")

    content = store.get_content(doc.doc_id)
    if content is None:
        raise _DocumentSkipped("no extracted content is stored")

    pieces = chunk_text(content, options)
    if not pieces:
        raise _DocumentSkipped("no usable text found")
    progress(f"Created {len(pieces)} chunk(s) from '{doc.filename}'. Extracting keywords...")

    chunks: list[Chunk] = []
    for piece in pieces:
        label = f"chunk {piece.index + 1}/{len(pieces)} of '{doc.filename}'"
        try:
            chunk = Chunk(
                chunk_id=make_chunk_id(doc.doc_id, piece.index),
                doc_id=doc.doc_id,
                doc_filename=doc.filename,
                text=piece.content,
            )
        except ValidationError:
            progress(f"Skipping {label}: chunk is not valid ({piece.char_count} characters)")
            continue

        try:
            chunk.summary = await annotate_chunk(
                chunk.text,
                model=settings.default_llm_model,
                api_key=settings.llm_api_key or None,
                timeout=settings.llm_timeout,
            )
        except Exception as exc:
            logger.warning("Keyword extraction failed for %s: %s", label, exc)
            if error_log is not None:
                error_log.log_error(
                    exc, ErrorType.API_REQUEST_FAILED, {"chunk_id": chunk.chunk_id}
                )
            if fallback is None:
                progress(f"Failed to process {label}. Skipping.")
                continue
            chunk.summary = fallback.keyword_summary(chunk.text)

        chunks.append(chunk)
        progress(f"Processed {label}.")

    if not chunks:
        raise _DocumentSkipped("no chunk could be processed")

    added = store.append_chunks(chunks)
    if added == 0 and store.get_document(doc.doc_id) is None:
        raise _DocumentSkipped("document was deleted during processing")
    return added


def _log_progress(message: str) -> None:
    logger.info(message)
