"""Unit tests for the chunking service."""

import pytest

from lexrag.services.chunking import (
    ChunkOptions,
    chunk_text,
    clean_text,
    get_chunk_statistics,
    overlap_tail,
)


def _paragraphs(n: int) -> str:
    return "\n\n".join(
        f"Paragraph {i} talks about topic {i} in some detail here." for i in range(n)
    )


def _squash(text: str) -> str:
    return "".join(text.split())


def test_clean_collapses_whitespace():
    raw = "  Hello   world  \n\n\n\n  foo  "
    assert clean_text(raw) == "Hello world\n\nfoo"


def test_clean_normalizes_line_endings_and_tabs():
    assert clean_text("a\r\nb\rc") == "a\nb\nc"
    assert clean_text("a\t\t b") == "a b"


def test_chunk_empty_returns_empty():
    assert chunk_text("") == []
    assert chunk_text("   \n\n  ") == []


def test_short_note_is_kept_below_minimum():
    chunks = chunk_text("  A short note.  ", ChunkOptions(min_chunk_size=100))
    assert len(chunks) == 1
    assert chunks[0].content == "A short note."
    assert chunks[0].index == 0
    assert (chunks[0].start_index, chunks[0].end_index) == (0, 13)
    assert chunks[0].char_count == 13


@pytest.mark.parametrize("text", ["x", "Hello, world!", "Two lines\nof text.", "One.\n\nTwo."])
def test_text_within_minimum_yields_single_chunk(text):
    chunks = chunk_text(text, ChunkOptions(min_chunk_size=50))
    assert [c.content for c in chunks] == [clean_text(text)]


def test_paragraphs_are_packed_up_to_max_size():
    text = _paragraphs(6)  # 52 chars per paragraph
    opts = ChunkOptions(max_chunk_size=150, min_chunk_size=20, overlap=0)
    chunks = chunk_text(text, opts)

    assert len(chunks) == 3
    for chunk in chunks:
        assert chunk.char_count <= 150
        assert chunk.content.count("Paragraph") == 2
        assert chunk.content == text[chunk.start_index:chunk.end_index]


def test_overlap_carries_tail_into_next_chunk():
    text = _paragraphs(6)
    opts = ChunkOptions(max_chunk_size=150, min_chunk_size=20, overlap=30)
    chunks = chunk_text(text, opts)

    assert len(chunks) >= 2
    assert chunks[1].content.startswith("topic 1 in some detail here.\n\nParagraph 2")
    assert chunks[1].start_index == text.index("Paragraph 2")
    for prev, cur in zip(chunks, chunks[1:]):
        assert cur.content.startswith(overlap_tail(prev.content, 30))


def test_chunk_indices_are_sequential():
    text = "Paragraph one.\n\nParagraph two.\n\nParagraph three.\n\nParagraph four."
    chunks = chunk_text(text, ChunkOptions(max_chunk_size=30, min_chunk_size=5, overlap=0))
    assert len(chunks) > 1
    for i, chunk in enumerate(chunks):
        assert chunk.index == i


def test_single_paragraph_falls_back_to_sentences():
    text = " ".join(f"Sentence number {i} is here." for i in range(20))
    chunks = chunk_text(text, ChunkOptions(max_chunk_size=100, min_chunk_size=20, overlap=30))

    assert len(chunks) > 1
    for chunk in chunks:
        assert chunk.char_count <= 100
        assert chunk.content.endswith("is here.")


def test_unbroken_text_falls_back_to_fixed_windows():
    text = "x" * 250
    chunks = chunk_text(text, ChunkOptions(max_chunk_size=100, min_chunk_size=10, overlap=20))

    assert [c.start_index for c in chunks] == [0, 80, 160]
    assert [c.char_count for c in chunks] == [100, 100, 90]
    assert chunks[-1].end_index == 250


def test_oversized_paragraph_is_not_force_split():
    text = "Short intro paragraph that is fine.\n\n" + "y" * 300
    chunks = chunk_text(text, ChunkOptions(max_chunk_size=100, min_chunk_size=10, overlap=0))

    assert len(chunks) == 2
    assert chunks[0].content == "Short intro paragraph that is fine."
    assert chunks[1].content == "y" * 300


@pytest.mark.parametrize(
    "opts",
    [
        ChunkOptions(max_chunk_size=120, min_chunk_size=40, overlap=20),
        ChunkOptions(max_chunk_size=200, min_chunk_size=80, overlap=0),
        ChunkOptions(max_chunk_size=90, min_chunk_size=30, overlap=50, preserve_paragraphs=False),
        ChunkOptions(
            max_chunk_size=100,
            min_chunk_size=60,
            overlap=10,
            preserve_paragraphs=False,
            preserve_sentences=False,
        ),
    ],
)
def test_only_last_chunk_may_be_below_minimum(opts):
    text = (
        "Ok.\n\nA medium paragraph with a few words in it. It has two sentences.\n\n"
        "Tiny.\n\n"
        + " ".join(f"Longer text block number {i} keeps going on." for i in range(12))
        + "\n\nThe end."
    )
    chunks = chunk_text(text, opts)

    assert chunks
    for chunk in chunks[:-1]:
        assert len(chunk.content.strip()) >= opts.min_chunk_size


def test_own_spans_reconstruct_cleaned_text():
    raw = "Intro line.\r\n\r\n\r\n" + _paragraphs(9) + "\n\n   Closing   words here."
    cleaned = clean_text(raw)
    chunks = chunk_text(raw, ChunkOptions(max_chunk_size=140, min_chunk_size=30, overlap=40))

    rebuilt = "".join(cleaned[c.start_index:c.end_index] for c in chunks)
    assert _squash(rebuilt) == _squash(cleaned)
    for chunk in chunks:
        assert chunk.content.endswith(cleaned[chunk.start_index:chunk.end_index])


def test_chunk_large_text():
    """Ensure we can handle a substantial document."""
    text = "\n\n".join([f"Section {i}. " + ("Content. " * 50) for i in range(10)])
    chunks = chunk_text(text, ChunkOptions(max_chunk_size=512, min_chunk_size=50, overlap=64))
    assert len(chunks) > 5
    total_chars = sum(c.char_count for c in chunks)
    assert total_chars > len(text) * 0.5  # most of the text is represented


def test_overlap_tail_boundaries():
    assert overlap_tail("short", 10) == "short"
    assert overlap_tail("anything", 0) == ""
    # Starts after a sentence boundary inside the window
    assert overlap_tail("First sentence here. Second one follows", 25) == "Second one follows"
    # Drops the partial leading word
    assert overlap_tail("alpha beta gamma delta", 8) == "delta"
    # Window already starts on a word boundary
    assert overlap_tail("alpha beta gamma delta", 11) == "gamma delta"
    # No boundary at all
    assert overlap_tail("abcdefghij", 4) == "ghij"


def test_chunk_statistics():
    assert get_chunk_statistics([]).total_chunks == 0

    chunks = chunk_text("x" * 250, ChunkOptions(max_chunk_size=100, min_chunk_size=10, overlap=20))
    stats = get_chunk_statistics(chunks)
    assert stats.total_chunks == 3
    assert stats.min_length == 90
    assert stats.max_length == 100
    assert stats.average_length == 97


def test_invalid_options_rejected():
    with pytest.raises(ValueError):
        ChunkOptions(max_chunk_size=0)
    with pytest.raises(ValueError):
        ChunkOptions(overlap=-1)
    with pytest.raises(ValueError, match="min_chunk_size must not exceed"):
        ChunkOptions(max_chunk_size=50, min_chunk_size=100)
    with pytest.raises(ValueError, match="overlap must be smaller"):
        ChunkOptions(max_chunk_size=100, min_chunk_size=10, overlap=100)


def test_short_text_kept_whole_at_equal_bounds():
    text = ("word " * 16).strip()
    chunks = chunk_text(text, ChunkOptions(max_chunk_size=100, min_chunk_size=100, overlap=10))
    assert [c.content for c in chunks] == [text]
