"""Keyword enrichment: asks the LLM for search keywords describing a chunk."""

from __future__ import annotations

from litellm import acompletion

KEYWORD_PROMPT = (
    "List search keywords that represent the core content of the text below, "
    "separated by commas. The keywords are used to search for and find the "
    "original text. Do not write sentences; list only the most important words "
    "and phrases.\n\n---\n{text}\n\n---\nKeywords:"
)


async def annotate_chunk(
    text: str,
    model: str,
    api_key: str | None = None,
    timeout: float | None = None,
) -> str:
    """Return a comma-separated keyword annotation for one chunk of text.

    Raises whatever LiteLLM raises; callers decide whether to skip or fall back.
    """
    kwargs: dict = {
        "model": model,
        "messages": [{"role": "user", "content": KEYWORD_PROMPT.format(text=text)}],
    }
    if api_key:
        kwargs["api_key"] = api_key
    if timeout:
        kwargs["timeout"] = timeout

    response = await acompletion(**kwargs)
    content = response.choices[0].message.content or ""
    return content.strip()
