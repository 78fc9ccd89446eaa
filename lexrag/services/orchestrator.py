"""Answer orchestrator: lexical retrieval followed by LLM answer generation.

Flow:
  1. Rank the stored chunks against the query (lexical search)
  2. If nothing matches, retry word by word and keep the best hit per word
  3. Assemble a prompt from the retrieved chunks
  4. Call the LLM via LiteLLM
  5. Return the answer with citations for the chunks used
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from litellm import acompletion

from lexrag.core.config import Settings, get_settings
from lexrag.core.errors import ErrorLog, ErrorType
from lexrag.models.chunk import Chunk
from lexrag.models.message import ChatMessage, Citation, MessageRole
from lexrag.services.search import search_chunks
from lexrag.services.store import Store

logger = logging.getLogger(__name__)

# Maximum conversation history turns to include
MAX_HISTORY_TURNS = 10

EMPTY_DATASET_ANSWER = (
    "The QA dataset has not been built yet. Build it from the uploaded documents first."
)
NO_MATCH_ANSWER = (
    "No information about '{query}' was found in the documents. Try other keywords "
    "or upload related documents."
)
ANSWER_FAILED = "Sorry, an error occurred while generating the answer: {error}"

ANSWER_PROMPT = (
    "You are a document question-answering assistant. Answer the user's question "
    "using only the context below. If the answer cannot be found in the context, "
    'say "The answer could not be found in the provided documents."\n\n'
    "## Context\n{context}\n\n## Question\n{query}\n\n## Answer\n"
)

AGENT_SYSTEM_PROMPT = (
    "You are an assistant that combines document retrieval with careful "
    "interpretation to write structured business documents. Treat the retrieved "
    "documents as reliable facts and organize them logically around the user's "
    "intent: an introduction, the core points with supporting evidence from the "
    "documents, and a conclusion with next steps. Keep sentences concise, "
    "highlight numbers, and mark uncertain information explicitly.\n\n"
    "## Related document context\n{context}"
)
NO_AGENT_CONTEXT = "There is no additional document information for this question."


@dataclass
class QAResponse:
    """The answer to a query, with the chunks it was based on."""
    answer: str
    citations: list[Citation] = field(default_factory=list)


def retrieve_chunks(
    query: str,
    chunks: Sequence[Chunk],
    top_k: int,
    fallback_top_k: int,
) -> list[Chunk]:
    """Search the full query; if nothing matches, search each word with K=1."""
    results = search_chunks(query, chunks, top_k=top_k)
    if results:
        return [r.chunk for r in results]

    fallback: list[Chunk] = []
    for word in query.split():
        fallback.extend(r.chunk for r in search_chunks(word, chunks, top_k=1))
    if fallback:
        logger.info("Full query matched nothing; using %d per-word hit(s)", len(fallback))
    return fallback[:fallback_top_k]


async def answer_query(
    store: Store,
    query: str,
    settings: Settings | None = None,
    error_log: ErrorLog | None = None,
) -> QAResponse:
    """Answer a question from the indexed chunks."""
    settings = settings or get_settings()
    chunks = store.list_chunks()
    if not chunks:
        return QAResponse(answer=EMPTY_DATASET_ANSWER)

    retrieved = retrieve_chunks(
        query,
        chunks,
        top_k=settings.search_top_k,
        fallback_top_k=settings.fallback_top_k,
    )
    if not retrieved:
        return QAResponse(answer=NO_MATCH_ANSWER.format(query=query))

    return await generate_answer(
        query,
        retrieved,
        model=settings.default_llm_model,
        api_key=settings.llm_api_key or None,
        timeout=settings.llm_timeout,
        error_log=error_log,
    )


async def generate_answer(
    query: str,
    chunks: Sequence[Chunk],
    model: str,
    api_key: str | None = None,
    timeout: float | None = None,
    error_log: ErrorLog | None = None,
) -> QAResponse:
    """Ask the LLM to answer ``query`` from ``chunks``.

    LLM failures are logged and turned into an apologetic answer without citations.
    """
    if not chunks:
        return QAResponse(answer=NO_MATCH_ANSWER.format(query=query))

    context = "\n\n---\n\n".join(
        f"Document: {c.doc_filename}\nContent: {c.text}" for c in chunks
    )
    kwargs: dict = {
        "model": model,
        "messages": [
            {"role": "user", "content": ANSWER_PROMPT.format(context=context, query=query)}
        ],
    }
    if api_key:
        kwargs["api_key"] = api_key
    if timeout:
        kwargs["timeout"] = timeout

    try:
        response = await acompletion(**kwargs)
    except Exception as exc:
        logger.exception("Answer generation failed")
        if error_log is not None:
            error_log.log_error(exc, ErrorType.API_REQUEST_FAILED, {"query": query})
        return QAResponse(answer=ANSWER_FAILED.format(error=exc))

    citations = [
        Citation(
            doc_id=c.doc_id,
            filename=c.doc_filename,
            chunk_id=c.chunk_id,
            quote=c.text,
        )
        for c in chunks
    ]
    return QAResponse(answer=response.choices[0].message.content or "", citations=citations)


async def chat_with_agent(
    store: Store,
    history: list[ChatMessage],
    query: str,
    settings: Settings | None = None,
) -> ChatMessage:
    """Run one conversational turn, grounding the system prompt in retrieved chunks."""
    settings = settings or get_settings()

    retrieved: list[Chunk] = []
    chunks = store.list_chunks()
    if chunks:
        retrieved = [r.chunk for r in search_chunks(query, chunks, top_k=settings.chat_top_k)]

    context = NO_AGENT_CONTEXT
    if retrieved:
        context = (
            "The following excerpts from the documents may be relevant to the question:\n\n"
            + "\n\n---\n\n".join(
                f"Excerpt from '{c.doc_filename}':\n{c.text}" for c in retrieved
            )
        )

    messages = _build_messages(
        system_prompt=AGENT_SYSTEM_PROMPT.format(context=context),
        history=history,
        user_message=query,
    )
    kwargs: dict = {"model": settings.default_llm_model, "messages": messages}
    if settings.llm_api_key:
        kwargs["api_key"] = settings.llm_api_key
    if settings.llm_timeout:
        kwargs["timeout"] = settings.llm_timeout

    response = await acompletion(**kwargs)

    return ChatMessage(
        role=MessageRole.AGENT,
        content=response.choices[0].message.content or "",
        citations=[
            Citation(doc_id=c.doc_id, filename=c.doc_filename, chunk_id=c.chunk_id, quote=c.text)
            for c in retrieved
        ],
    )


def _build_messages(
    system_prompt: str,
    history: list[ChatMessage],
    user_message: str,
) -> list[dict]:
    """Assemble the message array for the LLM call."""
    messages: list[dict] = [{"role": "system", "content": system_prompt}]

    # Conversation history (trim to last N turns)
    for msg in history[-MAX_HISTORY_TURNS * 2:]:  # 2 messages per turn
        messages.append({
            "role": "user" if msg.role == MessageRole.USER else "assistant",
            "content": msg.content,
        })

    messages.append({"role": "user", "content": user_message})
    return messages
