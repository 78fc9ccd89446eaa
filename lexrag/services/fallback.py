"""Local, LLM-free stand-ins for summaries and keyword annotations."""

from __future__ import annotations

import re
from collections import Counter

_SENTENCE_END = re.compile(r"[.!?]+")
_NON_WORD = re.compile(r"[^\w\s가-힣]")


class FallbackService:
    """Deterministic text annotator used when the LLM cannot be reached."""

    def basic_summary(self, text: str, max_length: int = 200) -> str:
        """Leading whole sentences of ``text`` up to ``max_length`` characters."""
        if len(text) <= max_length:
            return text

        summary = ""
        length = 0
        for sentence in _SENTENCE_END.split(text):
            sentence = sentence.strip()
            if not sentence:
                continue
            if length + len(sentence) > max_length:
                break
            summary = f"{summary} {sentence}" if summary else sentence
            length += len(sentence)

        return summary + "..."

    def extract_keywords(self, text: str, max_keywords: int = 5) -> list[str]:
        """Most frequent words of ``text``, ties broken by first appearance."""
        words = [w for w in _NON_WORD.sub(" ", text.lower()).split() if len(w) > 1]
        return [word for word, _ in Counter(words).most_common(max_keywords)]

    def keyword_summary(self, text: str, max_keywords: int = 5) -> str:
        """Comma-separated keywords in the same shape the enrichment LLM returns."""
        return ", ".join(self.extract_keywords(text, max_keywords))
