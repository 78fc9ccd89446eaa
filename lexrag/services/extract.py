"""Text extraction from uploaded files (PDF, DOCX, PPTX, TXT, MD, CSV)."""

from __future__ import annotations

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path

from lexrag.core.errors import ExtractionError
from lexrag.models.content import ContentMetadata

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PPTX_MIME = "application/vnd.openxmlformats-officedocument.presentationml.presentation"

_MIME_BY_EXTENSION = {
    ".pdf": PDF_MIME,
    ".docx": DOCX_MIME,
    ".pptx": PPTX_MIME,
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
}
_TEXT_MIMES = frozenset({"text/plain", "text/markdown", "text/csv"})

MIN_EXTRACTED_CHARS = 10


@dataclass
class ParsedContent:
    text: str
    metadata: ContentMetadata = field(default_factory=ContentMetadata)


def resolve_mime(filename: str, mime: str | None = None) -> str:
    """Use the declared MIME type when it is one we handle, else the extension's."""
    if mime:
        mime = mime.split(";", 1)[0].strip().lower()
        if mime in _TEXT_MIMES or mime in (PDF_MIME, DOCX_MIME, PPTX_MIME):
            return mime
    ext = Path(filename).suffix.lower()
    return _MIME_BY_EXTENSION.get(ext, mime or "unknown")


def extract_document(
    filename: str,
    content: bytes,
    mime: str | None = None,
    min_chars: int = MIN_EXTRACTED_CHARS,
) -> ParsedContent:
    """Extract plain text and metadata from file bytes.

    Args:
        filename: Original filename (used for the title and as a type hint).
        content: Raw file bytes.
        mime: Declared MIME type, if any.
        min_chars: Minimum number of non-whitespace characters required.

    Returns:
        ParsedContent with the extracted text.

    Raises:
        ExtractionError: If the type is unsupported or no usable text was found.
    """
    resolved = resolve_mime(filename, mime)

    try:
        if resolved in _TEXT_MIMES:
            parsed = _extract_plain(content)
        elif resolved == PDF_MIME:
            parsed = _extract_pdf(content)
        elif resolved == DOCX_MIME:
            parsed = _extract_docx(content)
        elif resolved == PPTX_MIME:
            parsed = _extract_pptx(content)
        else:
            raise ExtractionError(f"Unsupported file type: {resolved}", filename=filename)
    except ExtractionError:
        raise
    except Exception as exc:
        raise ExtractionError(f"Could not read {resolved} file: {exc}", filename=filename) from exc

    if len("".join(parsed.text.split())) < min_chars:
        raise ExtractionError(
            "Not enough text could be extracted from the file", filename=filename
        )

    if not parsed.metadata.title:
        parsed.metadata.title = filename
    return parsed


def extract_text(filename: str, content: bytes) -> str:
    """Extract plain text from file bytes based on the file extension."""
    return extract_document(filename, content).text


def _extract_plain(content: bytes) -> ParsedContent:
    return ParsedContent(text=content.decode("utf-8-sig"))


def _extract_pdf(content: bytes) -> ParsedContent:
    from pypdf import PdfReader

    reader = PdfReader(BytesIO(content))
    pages = [page.extract_text() or "" for page in reader.pages]
    info = reader.metadata
    return ParsedContent(
        text="\n\n".join(pages),
        metadata=ContentMetadata(
            title=(info.title if info else None) or None,
            author=(info.author if info else None) or None,
            pages=len(reader.pages),
        ),
    )


def _extract_docx(content: bytes) -> ParsedContent:
    from docx import Document

    doc = Document(BytesIO(content))
    props = doc.core_properties
    return ParsedContent(
        text="\n".join(p.text for p in doc.paragraphs),
        metadata=ContentMetadata(title=props.title or None, author=props.author or None),
    )


def _extract_pptx(content: bytes) -> ParsedContent:
    from pptx import Presentation

    prs = Presentation(BytesIO(content))
    slides: list[str] = []
    for slide in prs.slides:
        texts = [shape.text_frame.text for shape in slide.shapes if shape.has_text_frame]
        slides.append("\n".join(t for t in texts if t.strip()))
    props = prs.core_properties
    return ParsedContent(
        text="\n\n".join(s for s in slides if s),
        metadata=ContentMetadata(
            title=props.title or None,
            author=props.author or None,
            pages=len(prs.slides),
        ),
    )
