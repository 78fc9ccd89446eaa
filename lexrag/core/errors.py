"""Exception types and the error log service."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from lexrag.models.base import utcnow

logger = logging.getLogger(__name__)


class LexragError(Exception):
    """Base class for all lexrag errors."""


class StoreError(LexragError):
    """The store was used in violation of its lifecycle."""


class StoreClosedError(StoreError):
    """An operation was attempted on a store that is not open."""


class DuplicateDocumentError(LexragError):
    def __init__(self, doc_id: str) -> None:
        super().__init__(f"Document already exists: {doc_id}")
        self.doc_id = doc_id


class DocumentNotFoundError(LexragError):
    def __init__(self, doc_id: str) -> None:
        super().__init__(f"Document not found: {doc_id}")
        self.doc_id = doc_id


class ExtractionError(LexragError, ValueError):
    """No usable text could be extracted from an uploaded file."""

    def __init__(self, message: str, filename: str | None = None) -> None:
        super().__init__(message)
        self.filename = filename


class DocumentProcessingError(LexragError):
    """Upload or parsing of a document failed; carries the filename for display."""

    def __init__(self, filename: str, reason: str) -> None:
        super().__init__(f"{filename}: {reason}")
        self.filename = filename
        self.reason = reason


# ── Error log ────────────────────────────────────────────────


class ErrorType(StrEnum):
    API_KEY_INVALID = "api_key_invalid"
    API_REQUEST_FAILED = "api_request_failed"
    DOCUMENT_PROCESSING_FAILED = "document_processing_failed"
    NETWORK_ERROR = "network_error"
    UNKNOWN_ERROR = "unknown_error"


_RETRYABLE = frozenset({ErrorType.NETWORK_ERROR, ErrorType.API_REQUEST_FAILED})


@dataclass
class ErrorInfo:
    """A single recorded failure."""
    type: ErrorType
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
    retryable: bool = False


class ErrorLog:
    """Bounded in-memory record of recent failures.

    Created by the host application and handed to the pipeline functions that
    need it; the core store, chunker and search engine never touch it.
    """

    def __init__(self, max_size: int = 100, log_errors: bool = True) -> None:
        self._entries: deque[ErrorInfo] = deque(maxlen=max_size)
        self._log_errors = log_errors

    def log_error(
        self,
        error: BaseException,
        type: ErrorType = ErrorType.UNKNOWN_ERROR,
        details: dict[str, Any] | None = None,
    ) -> ErrorInfo:
        info = ErrorInfo(
            type=type,
            message=str(error),
            details=details or {},
            retryable=type in _RETRYABLE,
        )
        self._entries.append(info)
        if self._log_errors:
            logger.error("[%s] %s %s", type, info.message, info.details or "")
        return info

    def recent(self, limit: int = 10) -> list[ErrorInfo]:
        if limit <= 0:
            return []
        return list(self._entries)[-limit:]

    def clear(self) -> None:
        self._entries.clear()

    @property
    def count(self) -> int:
        return len(self._entries)

    @property
    def has_errors(self) -> bool:
        return bool(self._entries)
