import os
from pathlib import Path
from typing import Annotated

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from typer import Exit, Option, Typer

from .index import DEFAULT_TOP_K, RetrievalIndex, open_index
from .index_config import ENV_INDEX_PATH, ENV_STORAGE_BACKEND
from .log_config import configure_logging
from .storage import StorageError

app = Typer(help="Lightweight semantic retrieval over a local knowledge base.")

IndexPathOption = Annotated[
    str | None,
    Option(
        "--index-path",
        help="Index location. Defaults to $KB_RETRIEVAL_INDEX_PATH or ~/.kb_retrieval/index.json.",
    ),
]
StorageOption = Annotated[
    str | None,
    Option(
        "--storage",
        help="Storage backend: json or duckdb. Defaults to $KB_RETRIEVAL_STORAGE or json.",
    ),
]


def _open(console: Console, index_path: str | None, storage: str | None) -> RetrievalIndex:
    try:
        return open_index(index_path, backend=storage)
    except (StorageError, OSError, ValueError) as exc:
        console.print(f"[bold red]Cannot open index:[/] {exc}")
        raise Exit(code=1)


def _stats_table(index: RetrievalIndex) -> Table:
    stats = index.stats()
    table = Table(title="Index statistics", title_justify="left")
    table.add_column("Dimensions", justify="right")
    table.add_column("Chunks", justify="right")
    table.add_column("Documents", justify="right")
    table.add_row(str(stats.dimensions), str(stats.chunk_count), str(stats.document_count))
    return table


@app.callback()
def main(
    log_level: Annotated[
        str | None,
        Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)."),
    ] = None,
) -> None:
    configure_logging(log_level)


@app.command()
def add(
    text: Annotated[
        str | None, Option("--text", help="Text to add to the knowledge base.")
    ] = None,
    file: Annotated[
        Path | None,
        Option("--file", "-f", help="Read the text to add from this file.", exists=True, dir_okay=False),
    ] = None,
    title: Annotated[str | None, Option("--title", help="Display title of the document.")] = None,
    chunk_size: Annotated[
        int | None, Option("--chunk-size", help="Target chunk size in characters (300-1500).")
    ] = None,
    document_id: Annotated[
        str | None, Option("--document-id", help="Append to an existing document id.")
    ] = None,
    index_path: IndexPathOption = None,
    storage: StorageOption = None,
) -> None:
    """Split a document into chunks, embed them and store them in the index."""
    console = Console()
    if (text is None) == (file is None):
        console.print("[bold red]Provide exactly one of --text or --file[/]")
        raise Exit(code=2)

    content = text if text is not None else file.read_text(encoding="utf-8")
    if not content.strip():
        console.print("[bold red]Nothing to add: the text is empty[/]")
        raise Exit(code=2)

    index = _open(console, index_path, storage)
    try:
        result = index.add_document(
            content,
            title=title or (file.stem if file is not None else None),
            chunk_size=chunk_size,
            document_id=document_id,
        )
    except StorageError as exc:
        console.print(f"[bold red]Cannot save index:[/] {exc}")
        raise Exit(code=1)

    console.print(
        f"Added document [bold]{result.document_id}[/] "
        f"with [bold]{result.chunks_added}[/] chunk(s)."
    )
    console.print(_stats_table(index))


@app.command()
def search(
    query: Annotated[str, Option("--query", "-q", help="Free-text query.")],
    k: Annotated[int, Option("-k", help="Number of documents to return (1-20).")] = DEFAULT_TOP_K,
    index_path: IndexPathOption = None,
    storage: StorageOption = None,
) -> None:
    """Search the knowledge base and print the best matching documents."""
    console = Console()
    if not query.strip():
        console.print("[bold red]The query is empty[/]")
        raise Exit(code=2)

    index = _open(console, index_path, storage)
    result = index.search(query.strip(), k)
    if not result.items:
        console.print("[yellow]No documents in the index.[/]")
        return

    for rank, item in enumerate(result.items, start=1):
        panel = Panel(
            Text(item.text or "(empty excerpt)"),
            title_align="left",
            title=f"[{rank}] {escape(item.title or '(untitled)')}  score={item.score:.4f}",
            subtitle=item.document_id,
            subtitle_align="right",
            border_style="bold green",
        )
        console.print(panel)


@app.command()
def stats(
    index_path: IndexPathOption = None,
    storage: StorageOption = None,
) -> None:
    """Print index statistics."""
    console = Console()
    index = _open(console, index_path, storage)
    console.print(_stats_table(index))


@app.command()
def serve(
    host: Annotated[str, Option("--host", help="Interface to bind.")] = "127.0.0.1",
    port: Annotated[int, Option("--port", help="Port to listen on.")] = 8000,
    index_path: IndexPathOption = None,
    storage: StorageOption = None,
) -> None:
    """Run the HTTP API."""
    from .server import run_server

    # the server resolves its index from the environment on first request
    if index_path:
        os.environ[ENV_INDEX_PATH] = index_path
    if storage:
        os.environ[ENV_STORAGE_BACKEND] = storage
    run_server(host=host, port=port)
