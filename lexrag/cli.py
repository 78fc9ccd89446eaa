"""Command line entrypoint."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click

from lexrag.core.config import Settings, get_settings
from lexrag.core.errors import (
    DocumentNotFoundError,
    DocumentProcessingError,
    ErrorLog,
    ErrorType,
)
from lexrag.models.message import ChatMessage, MessageRole
from lexrag.services.orchestrator import answer_query, chat_with_agent
from lexrag.services.search import get_search_suggestions, highlight_matches, search_chunks
from lexrag.services.store import Store
from lexrag.workers.ingest import (
    DatasetBuildResult,
    build_dataset,
    delete_document,
    rebuild_dataset,
    upload_document,
)

_log = logging.getLogger(__name__)

PREVIEW_LENGTH = 200


class CliState:
    """Shared command state. The store is opened on first use."""

    def __init__(self, database_url: str, settings: Settings) -> None:
        self.database_url = database_url
        self.settings = settings
        self.error_log = ErrorLog(log_errors=settings.enable_error_logging)
        self._store: Store | None = None

    @property
    def store(self) -> Store:
        if self._store is None:
            self._store = Store.from_url(self.database_url).open()
        return self._store

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
            self._store = None


@click.group()
@click.option("--database-url", default=None, help="Override LEXRAG_DATABASE_URL.")
@click.pass_context
def main(ctx: click.Context, database_url: str | None) -> None:
    """Index documents and answer questions about them."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    state = CliState(database_url or settings.database_url, settings)
    ctx.call_on_close(state.close)
    ctx.obj = state


@main.command("upload")
@click.argument(
    "paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.pass_obj
def upload(obj: CliState, paths: tuple[Path, ...]) -> None:
    """Upload one or more files (PDF, DOCX, PPTX, TXT, MD, CSV)."""
    failed = 0
    for path in paths:
        try:
            doc = upload_document(
                obj.store,
                path.name,
                path.read_bytes(),
                settings=obj.settings,
                error_log=obj.error_log,
            )
        except DocumentProcessingError as exc:
            failed += 1
            click.echo(f"Failed: {exc}", err=True)
            continue
        click.echo(f"{doc.doc_id}  {doc.filename}  {doc.status}")

    if failed:
        raise click.ClickException(f"{failed} of {len(paths)} file(s) could not be processed")


@main.command("list")
@click.pass_obj
def list_documents(obj: CliState) -> None:
    """List uploaded documents, newest first."""
    store: Store = obj.store
    documents = store.list_documents()
    if not documents:
        click.echo("No documents uploaded.")
        return
    for doc in documents:
        click.echo(
            f"{doc.doc_id}  {doc.status:<10}  {doc.size:>9}  "
            f"{doc.created_at:%Y-%m-%d %H:%M}  {doc.filename}"
        )


@main.command("delete")
@click.argument("doc_id")
@click.pass_obj
def delete(obj: CliState, doc_id: str) -> None:
    """Delete a document together with its chunks."""
    try:
        delete_document(obj.store, doc_id)
    except DocumentNotFoundError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Deleted {doc_id}")


@main.command("build")
@click.pass_obj
def build(obj: CliState) -> None:
    """Chunk and annotate uploaded documents that are not in the QA dataset yet."""
    result = asyncio.run(
        build_dataset(
            obj.store,
            click.echo,
            settings=obj.settings,
            error_log=obj.error_log,
        )
    )
    _report_skipped(result)


@main.command("rebuild")
@click.pass_obj
def rebuild(obj: CliState) -> None:
    """Clear the QA dataset and process every document again."""
    result = asyncio.run(
        rebuild_dataset(
            obj.store,
            click.echo,
            settings=obj.settings,
            error_log=obj.error_log,
        )
    )
    _report_skipped(result)


def _report_skipped(result: DatasetBuildResult) -> None:
    for skipped in result.skipped:
        click.echo(f"Skipped {skipped.filename} ({skipped.doc_id}): {skipped.reason}", err=True)


@main.command("search")
@click.argument("query")
@click.option("--top-k", default=5, show_default=True, type=int)
@click.pass_obj
def search(obj: CliState, query: str, top_k: int) -> None:
    """Show the chunks that best match QUERY."""
    chunks = obj.store.list_chunks()
    results = search_chunks(query, chunks, top_k=top_k)
    if not results:
        click.echo("No matching chunks.")
        suggestions = get_search_suggestions(chunks)
        if suggestions:
            click.echo("Try: " + ", ".join(suggestions))
        return

    for r in results:
        preview = highlight_matches(r.chunk.text[:PREVIEW_LENGTH], r.matched_terms)
        click.echo(f"[{r.score:.2f}] {r.chunk.doc_filename} ({r.chunk.chunk_id})")
        click.echo(f"    {preview}")


@main.command("ask")
@click.argument("question")
@click.option("--save", is_flag=True, help="Save the exchange as a chat session.")
@click.pass_obj
def ask(obj: CliState, question: str, save: bool) -> None:
    """Answer QUESTION from the indexed documents."""
    store: Store = obj.store
    response = asyncio.run(
        answer_query(store, question, settings=obj.settings, error_log=obj.error_log)
    )
    click.echo(response.answer)
    for i, citation in enumerate(response.citations, 1):
        click.echo(f"[{i}] {citation.filename} ({citation.chunk_id})")

    if save:
        session_id = store.save_session([
            ChatMessage(role=MessageRole.USER, content=question),
            ChatMessage(
                role=MessageRole.AGENT,
                content=response.answer,
                citations=response.citations,
            ),
        ])
        click.echo(f"Saved session {session_id}")


@main.command("chat")
@click.option("--session", "session_id", default=None, help="Continue a saved session.")
@click.pass_obj
def chat(obj: CliState, session_id: str | None) -> None:
    """Talk to the document agent. An empty line ends the conversation."""
    store: Store = obj.store
    history = store.load_session(session_id) if session_id else []
    start = len(history)

    while True:
        query = click.prompt("you", default="", show_default=False).strip()
        if not query:
            break
        try:
            reply = asyncio.run(
                chat_with_agent(store, history, query, settings=obj.settings)
            )
        except Exception as exc:
            obj.error_log.log_error(exc, ErrorType.API_REQUEST_FAILED, {"query": query})
            click.echo(f"Error: {exc}", err=True)
            continue
        click.echo(f"agent: {reply.content}")
        history += [ChatMessage(role=MessageRole.USER, content=query), reply]

    if len(history) > start:
        saved = store.save_session(history)
        if session_id:
            store.delete_session(session_id)
        click.echo(f"Saved session {saved}")


@main.command("export")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.pass_obj
def export(obj: CliState, output: Path | None) -> None:
    """Write the chunk dataset as JSON."""
    data = obj.store.export_chunks_json()
    if output is None:
        click.echo(data)
        return
    output.write_text(data, encoding="utf-8")
    _log.info("Chunk dataset written to %s", output)


@main.command("sessions")
@click.option("--clear", is_flag=True, help="Delete all saved sessions.")
@click.pass_obj
def sessions(obj: CliState, clear: bool) -> None:
    """List saved chat sessions."""
    store: Store = obj.store
    if clear:
        store.clear_sessions()
        click.echo("Chat history cleared.")
        return
    for chat in store.list_sessions():
        click.echo(
            f"{chat.id}  {chat.updated_at:%Y-%m-%d %H:%M}  {len(chat.messages):>3}  {chat.title}"
        )


if __name__ == "__main__":
    main()
