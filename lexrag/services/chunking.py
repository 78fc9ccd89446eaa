"""Text cleaning and chunking service.

Chunking tries three strategies in order and keeps the first one that yields a
usable fragment:

  1. paragraphs (split on blank lines)
  2. sentences (split after ., ! or ? followed by whitespace)
  3. fixed-size windows

Paragraphs and sentences are accumulated greedily into fragments of at most
``max_chunk_size`` characters. Each new fragment starts with an overlap tail
taken from the end of the previous one.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterator
from dataclasses import dataclass


@dataclass
class TextChunk:
    """A chunk of text with its position in the cleaned source text.

    ``start_index``/``end_index`` delimit the chunk's own span; ``content`` is
    that span, prefixed by the overlap carried over from the previous chunk.
    """
    index: int
    content: str
    start_index: int
    end_index: int
    char_count: int


@dataclass(frozen=True)
class ChunkOptions:
    max_chunk_size: int = 1000
    min_chunk_size: int = 100
    overlap: int = 100
    preserve_paragraphs: bool = True
    preserve_sentences: bool = True

    def __post_init__(self) -> None:
        if self.max_chunk_size < 1:
            raise ValueError("max_chunk_size must be at least 1")
        if self.min_chunk_size < 0:
            raise ValueError("min_chunk_size must not be negative")
        if self.overlap < 0:
            raise ValueError("overlap must not be negative")
        if self.min_chunk_size > self.max_chunk_size:
            raise ValueError("min_chunk_size must not exceed max_chunk_size")
        if self.overlap >= self.max_chunk_size:
            raise ValueError("overlap must be smaller than max_chunk_size")


@dataclass
class ChunkStatistics:
    total_chunks: int
    average_length: int
    min_length: int
    max_length: int


_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
_OVERLAP_SENTENCE = re.compile(r"[.!?]\s+(.+)$", re.DOTALL)

_PARAGRAPH_JOIN = "\n\n"
_SENTENCE_JOIN = " "


def clean_text(text: str) -> str:
    """Normalize line endings and whitespace before chunking."""
    # Normalize line endings
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    # Normalize unicode to NFC form
    text = unicodedata.normalize("NFC", text)
    # Collapse multiple spaces/tabs into a single space
    text = re.sub(r"[^\S\n]+", " ", text)
    # Strip trailing/leading spaces on each line
    text = re.sub(r" *\n *", "\n", text)
    # Collapse multiple blank lines into a single blank line
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def chunk_text(text: str, options: ChunkOptions | None = None) -> list[TextChunk]:
    """Split text into ordered, overlapping chunks.

    Args:
        text: The input text to chunk.
        options: Size bounds and strategy switches. Defaults to ``ChunkOptions()``.

    Returns:
        List of TextChunk objects; empty for empty or whitespace-only input.
    """
    opts = options or ChunkOptions()
    if not text or not text.strip():
        return []

    cleaned = clean_text(text)

    if opts.preserve_paragraphs:
        chunks = _chunk_by_units(cleaned, _PARAGRAPH_BREAK, _PARAGRAPH_JOIN, opts)
        if _has_usable(chunks, opts):
            return chunks

    # Sentence splitting is also the fallback when paragraphs yield nothing usable
    if opts.preserve_sentences or opts.preserve_paragraphs:
        chunks = _chunk_by_units(cleaned, _SENTENCE_BREAK, _SENTENCE_JOIN, opts)
        if _has_usable(chunks, opts):
            return chunks

    return _chunk_by_size(cleaned, opts)


def overlap_tail(text: str, overlap: int) -> str:
    """Return the last ``overlap`` characters, trimmed to a sentence or word start."""
    if overlap <= 0:
        return ""
    if len(text) <= overlap:
        return text

    window = text[-overlap:]

    match = _OVERLAP_SENTENCE.search(window)
    if match:
        return match.group(1)

    # Window already begins at a word boundary
    if text[-overlap - 1].isspace():
        return window.lstrip()

    space = next((i for i, ch in enumerate(window) if ch.isspace()), -1)
    if space >= 0 and window[space + 1:].strip():
        return window[space + 1:].lstrip()

    return window


def get_chunk_statistics(chunks: list[TextChunk]) -> ChunkStatistics:
    if not chunks:
        return ChunkStatistics(total_chunks=0, average_length=0, min_length=0, max_length=0)
    lengths = [len(c.content) for c in chunks]
    return ChunkStatistics(
        total_chunks=len(chunks),
        average_length=round(sum(lengths) / len(lengths)),
        min_length=min(lengths),
        max_length=max(lengths),
    )


# ── Strategies ───────────────────────────────────────────────


def _chunk_by_units(
    text: str,
    separator: re.Pattern[str],
    joiner: str,
    opts: ChunkOptions,
) -> list[TextChunk]:
    """Greedily pack separator-delimited units into chunks with overlap."""
    chunks: list[TextChunk] = []
    prefix = ""          # overlap carried from the previous chunk
    start: int | None = None
    end = 0

    def body_len(unit_end: int) -> int:
        assert start is not None
        own = unit_end - start
        return len(prefix) + len(joiner) + own if prefix else own

    for unit_start, unit_end in _spans(text, separator):
        if start is None:
            start, end = unit_start, unit_end
            continue

        current_len = body_len(end)
        grown_len = body_len(unit_end)
        # Close the current chunk on overflow, but never below the minimum size
        if grown_len > opts.max_chunk_size and current_len >= opts.min_chunk_size:
            content = _compose(prefix, joiner, text[start:end])
            chunks.append(_make_chunk(len(chunks), content, start, end))
            prefix = overlap_tail(content, opts.overlap)
            start = unit_start
        end = unit_end

    if start is not None:
        content = _compose(prefix, joiner, text[start:end])
        chunks.append(_make_chunk(len(chunks), content, start, end))

    return chunks


def _chunk_by_size(text: str, opts: ChunkOptions) -> list[TextChunk]:
    """Slide a fixed window across the text."""
    chunks: list[TextChunk] = []
    size = opts.max_chunk_size
    step = max(1, size - opts.overlap)

    for i in range(0, len(text), step):
        window = text[i:i + size]
        is_last = i + size >= len(text)
        stripped = window.strip()
        if stripped and (len(stripped) >= opts.min_chunk_size or is_last):
            lead = len(window) - len(window.lstrip())
            chunk_start = i + lead
            chunks.append(
                _make_chunk(len(chunks), stripped, chunk_start, chunk_start + len(stripped))
            )
        if is_last:
            break

    return chunks


# ── Helpers ──────────────────────────────────────────────────


def _spans(text: str, separator: re.Pattern[str]) -> Iterator[tuple[int, int]]:
    """Yield (start, end) of each non-blank segment between separators, trimmed."""
    pos = 0
    for match in separator.finditer(text):
        yield from _trimmed_span(text, pos, match.start())
        pos = match.end()
    yield from _trimmed_span(text, pos, len(text))


def _trimmed_span(text: str, start: int, end: int) -> Iterator[tuple[int, int]]:
    segment = text[start:end]
    stripped = segment.strip()
    if stripped:
        lead = len(segment) - len(segment.lstrip())
        yield start + lead, start + lead + len(stripped)


def _compose(prefix: str, joiner: str, body: str) -> str:
    return f"{prefix}{joiner}{body}" if prefix else body


def _make_chunk(index: int, content: str, start: int, end: int) -> TextChunk:
    return TextChunk(
        index=index,
        content=content,
        start_index=start,
        end_index=end,
        char_count=len(content),
    )


def _has_usable(chunks: list[TextChunk], opts: ChunkOptions) -> bool:
    """True if at least one chunk fits the size bounds (the last one may be short)."""
    last = len(chunks) - 1
    return any(
        c.char_count <= opts.max_chunk_size
        and (c.char_count >= opts.min_chunk_size or i == last)
        for i, c in enumerate(chunks)
    )
