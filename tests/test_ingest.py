"""Tests for the ingestion pipeline: upload, dataset build (mocked LLM), delete and export."""

from unittest.mock import AsyncMock, patch

import pytest

from conftest import make_document
from lexrag.core.errors import (
    DocumentNotFoundError,
    DocumentProcessingError,
    ErrorLog,
    ErrorType,
    LexragError,
)
from lexrag.models.document import DocumentStatus
from lexrag.workers.ingest import (
    build_dataset,
    delete_document,
    export_document_text,
    rebuild_dataset,
    upload_document,
)

REPORT = b"Revenue grew 20% this quarter thanks to strong demand in the enterprise segment."
NOTES = b"The hiring plan adds twelve engineers to the platform team next year."


def _upload_pair(store, settings):
    first = upload_document(store, "report.txt", REPORT, settings=settings)
    second = upload_document(store, "notes.md", NOTES, settings=settings)
    return first, second


# ── Upload ───────────────────────────────────────────────────


def test_upload_document_stores_text(store, settings):
    doc = upload_document(store, "report.txt", REPORT, settings=settings)

    assert doc.status == DocumentStatus.READY
    assert doc.mime == "text/plain"
    assert doc.size == len(REPORT)
    assert store.get_document(doc.doc_id).status == DocumentStatus.READY
    assert store.get_content(doc.doc_id) == REPORT.decode()
    assert store.get_content_metadata(doc.doc_id).title == "report.txt"


@pytest.mark.parametrize(
    "filename,content",
    [("tiny.txt", b"hi"), ("virus.exe", b"\x00\x01\x02 binary")],
)
def test_upload_failure_marks_document_as_error(store, settings, filename, content):
    errors = ErrorLog(log_errors=False)
    with pytest.raises(DocumentProcessingError) as exc_info:
        upload_document(store, filename, content, settings=settings, error_log=errors)

    assert exc_info.value.filename == filename
    [doc] = store.list_documents()
    assert doc.status == DocumentStatus.ERROR
    assert store.get_content(doc.doc_id) is None
    assert errors.recent()[0].type == ErrorType.DOCUMENT_PROCESSING_FAILED


def test_upload_rejects_oversized_file(store, settings):
    small_limit = settings.model_copy(update={"max_file_size": 10})
    with pytest.raises(DocumentProcessingError, match="byte limit"):
        upload_document(store, "report.txt", REPORT, settings=small_limit)
    assert store.list_documents()[0].status == DocumentStatus.ERROR


# ── Dataset build ────────────────────────────────────────────


async def test_build_dataset_chunks_and_annotates(store, settings):
    first, second = _upload_pair(store, settings)
    progress: list[str] = []
    mock_annotate = AsyncMock(return_value="revenue, growth")

    with patch("lexrag.workers.ingest.annotate_chunk", mock_annotate):
        result = await build_dataset(store, progress.append, settings=settings)

    assert result.count == 2
    assert result.skipped == []
    assert mock_annotate.await_count == 2
    assert mock_annotate.call_args.kwargs["model"] == "test-model"

    chunks = store.list_chunks()
    assert {c.doc_id for c in chunks} == {first.doc_id, second.doc_id}
    assert all(c.summary == "revenue, growth" for c in chunks)
    assert {c.chunk_id for c in chunks} == {f"{first.doc_id}-chunk-0", f"{second.doc_id}-chunk-0"}
    assert progress[-1] == "Done! 2 new chunk(s) added to the dataset."


async def test_build_skips_already_processed_documents(store, settings):
    _upload_pair(store, settings)
    mock_annotate = AsyncMock(return_value="keywords")

    with patch("lexrag.workers.ingest.annotate_chunk", mock_annotate):
        await build_dataset(store, settings=settings)
        progress: list[str] = []
        result = await build_dataset(store, progress.append, settings=settings)

    assert result.count == 0
    assert mock_annotate.await_count == 2
    assert progress == [
        "All documents are already processed. Upload new documents to extend the dataset."
    ]


async def test_build_processes_only_new_documents(store, settings):
    upload_document(store, "report.txt", REPORT, settings=settings)
    mock_annotate = AsyncMock(return_value="keywords")

    with patch("lexrag.workers.ingest.annotate_chunk", mock_annotate):
        await build_dataset(store, settings=settings)
        late = upload_document(store, "notes.md", NOTES, settings=settings)
        result = await build_dataset(store, settings=settings)

    assert result.count == 1
    assert len(store.list_chunks()) == 2
    assert mock_annotate.call_args.args[0] == NOTES.decode()
    assert store.list_chunks()[-1].doc_id == late.doc_id


async def test_rebuild_reprocesses_everything(store, settings):
    _upload_pair(store, settings)

    with patch("lexrag.workers.ingest.annotate_chunk", AsyncMock(return_value="old")):
        await build_dataset(store, settings=settings)
    with patch("lexrag.workers.ingest.annotate_chunk", AsyncMock(return_value="new")):
        result = await rebuild_dataset(store, settings=settings)

    assert result.count == 2
    chunks = store.list_chunks()
    assert len(chunks) == 2
    assert {c.summary for c in chunks} == {"new"}


async def test_build_reports_skip_reasons(store, settings):
    with pytest.raises(DocumentProcessingError):
        upload_document(store, "broken.txt", b"hi", settings=settings)

    no_content = make_document("no-content.txt")
    store.add_document(no_content)

    blank = make_document("blank.txt")
    store.add_document(blank)
    store.save_content(blank.doc_id, "   \n\n   ")

    good = upload_document(store, "report.txt", REPORT, settings=settings)

    with patch("lexrag.workers.ingest.annotate_chunk", AsyncMock(return_value="kw")):
        result = await build_dataset(store, settings=settings)

    assert result.count == 1
    reasons = {s.filename: s.reason for s in result.skipped}
    assert reasons == {
        "broken.txt": "document is not ready (status: error)",
        "no-content.txt": "no extracted content is stored",
        "blank.txt": "no usable text found",
    }
    assert {c.doc_id for c in store.list_chunks()} == {good.doc_id}


async def test_annotation_failure_skips_chunk(store, settings):
    upload_document(store, "report.txt", REPORT, settings=settings)
    errors = ErrorLog(log_errors=False)
    failing = AsyncMock(side_effect=RuntimeError("rate limited"))

    with patch("lexrag.workers.ingest.annotate_chunk", failing):
        result = await build_dataset(store, settings=settings, error_log=errors)

    assert result.count == 0
    assert [s.reason for s in result.skipped] == ["no chunk could be processed"]
    assert store.list_chunks() == []
    info = errors.recent()[0]
    assert info.type == ErrorType.API_REQUEST_FAILED
    assert info.retryable is True
    assert info.message == "rate limited"


async def test_fallback_mode_annotates_locally(store, settings):
    doc = make_document("sales.txt")
    store.add_document(doc)
    store.save_content(doc.doc_id, "revenue revenue growth market")
    fallback_settings = settings.model_copy(update={"enable_fallback_mode": True})

    failing = AsyncMock(side_effect=RuntimeError("offline"))
    with patch("lexrag.workers.ingest.annotate_chunk", failing):
        result = await build_dataset(store, settings=fallback_settings)

    assert result.count == 1
    assert store.list_chunks()[0].summary == "revenue, growth, market"


async def test_oversized_chunk_is_skipped(store, settings):
    doc = make_document("huge.txt")
    store.add_document(doc)
    store.save_content(doc.doc_id, "word " * 5000)
    big_chunks = settings.model_copy(update={"max_chunk_size": 50_000})
    mock_annotate = AsyncMock(return_value="kw")

    with patch("lexrag.workers.ingest.annotate_chunk", mock_annotate):
        result = await build_dataset(store, settings=big_chunks)

    assert result.count == 0
    assert [s.reason for s in result.skipped] == ["no chunk could be processed"]
    mock_annotate.assert_not_awaited()


async def test_document_deleted_during_build(store, settings):
    doc = upload_document(store, "report.txt", REPORT, settings=settings)

    async def delete_then_annotate(text, **kwargs):
        store.remove_document(doc.doc_id)
        return "kw"

    with patch("lexrag.workers.ingest.annotate_chunk", side_effect=delete_then_annotate):
        result = await build_dataset(store, settings=settings)

    assert result.count == 0
    assert [s.reason for s in result.skipped] == ["document was deleted during processing"]
    assert store.list_chunks() == []


# ── Delete / export ──────────────────────────────────────────


async def test_delete_document_removes_chunks(store, settings):
    doc = upload_document(store, "report.txt", REPORT, settings=settings)
    with patch("lexrag.workers.ingest.annotate_chunk", AsyncMock(return_value="kw")):
        await build_dataset(store, settings=settings)

    delete_document(store, doc.doc_id)
    assert store.list_documents() == []
    assert store.list_chunks() == []

    with pytest.raises(DocumentNotFoundError):
        delete_document(store, doc.doc_id)


def test_export_document_text(store, settings):
    doc = upload_document(store, "Annual Report.md", REPORT, settings=settings)
    assert export_document_text(store, doc.doc_id) == ("Annual Report.txt", REPORT.decode())

    with pytest.raises(DocumentNotFoundError):
        export_document_text(store, "doc-missing")

    bare = make_document("bare.txt")
    store.add_document(bare)
    with pytest.raises(LexragError, match="No extracted content"):
        export_document_text(store, bare.doc_id)
