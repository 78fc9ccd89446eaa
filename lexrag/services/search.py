"""Lexical search over stored chunks.

Score per chunk, summed over the query keywords:

  3   per exact occurrence in the chunk text
  2   per exact occurrence in the chunk summary (keyword annotation)
  1   for a partial (substring) match with any chunk token, for keywords
      written in scripts without space-delimited words
  0.5 per occurrence in the text of any member of the keyword's synonym classes

The sum is boosted by the share of keywords matched exactly and scaled by a
length factor that prefers mid-sized chunks.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from lexrag.models.chunk import Chunk

STOP_WORDS = frozenset({
    # Korean particles and conjunctions
    "은", "는", "이", "가", "을", "를", "에", "의", "로", "와", "과", "하고", "그리고",
    # English function words
    "and", "or", "the", "a", "an", "in", "on", "at", "to", "for", "of", "with",
})

SYNONYM_GROUPS: tuple[frozenset[str], ...] = (
    frozenset({"회사", "기업", "법인", "조직", "company", "firm", "organization"}),
    frozenset({"매출", "수익", "revenue", "판매"}),
    frozenset({"직원", "사원", "구성원", "인력"}),
    frozenset({"기술", "테크", "tech", "기법"}),
    frozenset({"개발", "development", "구축", "제작"}),
    frozenset({"사업", "business", "비즈니스", "영업"}),
    frozenset({"투자", "investment", "자본", "펀딩"}),
    frozenset({"관리", "management", "운영", "매니지먼트"}),
)

TEXT_WEIGHT = 3.0
SUMMARY_WEIGHT = 2.0
PARTIAL_WEIGHT = 1.0
SYNONYM_WEIGHT = 0.5

# (exclusive upper length bound, factor); longer chunks get _LONG_CHUNK_FACTOR
_LENGTH_FACTORS: tuple[tuple[int, float], ...] = (
    (100, 0.5),
    (300, 0.8),
    (1001, 1.0),
    (1201, 0.9),
)
_LONG_CHUNK_FACTOR = 0.7

_NON_WORD = re.compile(r"[^\w\s가-힣]")
_WHITESPACE = re.compile(r"\s+")
# Hangul syllables, CJK ideographs, Hiragana and Katakana
_UNSPACED_SCRIPT = re.compile(r"[가-힣一-鿿぀-ヿ]")


@dataclass
class SearchResult:
    chunk: Chunk
    score: float
    matched_terms: list[str] = field(default_factory=list)


def normalize_text(text: str) -> str:
    text = _NON_WORD.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def extract_keywords(text: str) -> list[str]:
    """Split normalized text into distinct keywords, dropping stop words."""
    keywords: list[str] = []
    for word in text.split():
        if len(word) > 1 and word not in STOP_WORDS and word not in keywords:
            keywords.append(word)
    return keywords


def search_chunks(query: str, chunks: Sequence[Chunk], top_k: int = 5) -> list[SearchResult]:
    """Rank chunks against a query and return the best ``top_k`` with a positive score."""
    if not query.strip() or not chunks or top_k <= 0:
        return []

    keywords = extract_keywords(normalize_text(query))
    if not keywords:
        return []

    results: list[SearchResult] = []
    for chunk in chunks:
        score, matched = _score_chunk(keywords, chunk)
        if score > 0:
            results.append(SearchResult(chunk=chunk, score=score, matched_terms=matched))

    results.sort(key=lambda r: r.score, reverse=True)
    return results[:top_k]


def highlight_matches(text: str, terms: Sequence[str]) -> str:
    """Wrap every case-insensitive occurrence of the terms in ``**``."""
    terms = [t for t in terms if t]
    if not terms:
        return text
    pattern = re.compile(
        "|".join(re.escape(t) for t in sorted(terms, key=len, reverse=True)),
        re.IGNORECASE,
    )
    return pattern.sub(lambda m: f"**{m.group(0)}**", text)


def get_search_suggestions(chunks: Sequence[Chunk], max_suggestions: int = 5) -> list[str]:
    """Suggest query terms taken from the chunks' keyword annotations."""
    suggestions: list[str] = []
    for chunk in chunks:
        for keyword in extract_keywords(normalize_text(chunk.summary)):
            if len(keyword) > 2 and keyword not in suggestions:
                suggestions.append(keyword)
    return sorted(suggestions[:max_suggestions])


# ── Scoring ──────────────────────────────────────────────────


def _score_chunk(keywords: list[str], chunk: Chunk) -> tuple[float, list[str]]:
    text = normalize_text(chunk.text)
    summary = normalize_text(chunk.summary)
    tokens = set(text.split()) | set(summary.split())

    score = 0.0
    matched: list[str] = []

    for keyword in keywords:
        text_hits = text.count(keyword)
        summary_hits = summary.count(keyword)
        score += TEXT_WEIGHT * text_hits + SUMMARY_WEIGHT * summary_hits
        if text_hits or summary_hits:
            matched.append(keyword)

        if _UNSPACED_SCRIPT.search(keyword) and any(
            keyword in token or token in keyword for token in tokens
        ):
            score += PARTIAL_WEIGHT

        score += _synonym_score(keyword, text)

    score *= 1 + len(matched) / len(keywords)
    score *= _length_factor(len(chunk.text))
    return round(score, 2), matched


def _synonym_score(keyword: str, text: str) -> float:
    score = 0.0
    for group in SYNONYM_GROUPS:
        if keyword in group:
            score += SYNONYM_WEIGHT * sum(text.count(term) for term in group)
    return score


def _length_factor(length: int) -> float:
    for upper, factor in _LENGTH_FACTORS:
        if length < upper:
            return factor
    return _LONG_CHUNK_FACTOR
