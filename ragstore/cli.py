"""
CLI interface for the document store.

Usage:
    ragstore put notes/meeting "Postgres migration planned for Q3."
    ragstore put-file ./report.pdf --id reports/q3
    ragstore get notes/meeting
    ragstore find "database system"
"""

import json
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import DocumentEngine
from .errors import NotFound
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import MetadataFilter, infer_mime_type, parse_utc_timestamp


# Configure quiet mode by default (suppress verbose library output)
# Set RAGSTORE_VERBOSE=1 to enable debug mode via environment
if os.environ.get("RAGSTORE_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from . import __version__
        print(f"ragstore {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


app = typer.Typer(
    name="ragstore",
    help="Chunked document store with semantic retrieval.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="RAGSTORE_STORE_PATH",
        help="Path to the store directory (default: ~/.ragstore/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Chunked document store with semantic retrieval."""


def _get_engine() -> DocumentEngine:
    """Open the store, handling errors gracefully."""
    import atexit

    try:
        engine = DocumentEngine(_store_override)
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(engine.close)
    return engine


def _parse_tags(tags: Optional[list[str]]) -> dict[str, str]:
    """Parse key=value tag list to dict."""
    if not tags:
        return {}
    parsed = {}
    for tag in tags:
        if "=" not in tag:
            hint = f"Error: Invalid tag format '{tag}'."
            if ":" in tag:
                k, v = tag.split(":", 1)
                hint += f" Did you mean: {k}={v}?"
            else:
                hint += " Use key=value"
            typer.echo(hint, err=True)
            raise typer.Exit(1)
        k, v = tag.split("=", 1)
        parsed[k] = v
    return parsed


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

TagOption = Annotated[
    Optional[list[str]],
    typer.Option(
        "--tag", "-t",
        help="Tag as key=value (repeatable)"
    )
]

NoSplitOption = Annotated[
    bool,
    typer.Option(
        "--no-split",
        help="Store the content as a single chunk"
    )
]


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def put(
    id: Annotated[str, typer.Argument(help="Document id (path-like, e.g. notes/meeting)")],
    content: Annotated[Optional[str], typer.Argument(
        help="Text content; '-' or omitted reads stdin"
    )] = None,
    tag: TagOption = None,
    mime_type: Annotated[Optional[str], typer.Option(
        "--mime", help="MIME type (default: inferred from id)"
    )] = None,
    no_split: NoSplitOption = False,
):
    """Store text content under an id."""
    tags = _parse_tags(tag)
    if content is None or content == "-":
        content = sys.stdin.read()
    engine = _get_engine()
    try:
        metadata = engine.store(id, content, tags=tags, mime_type=mime_type, split=not no_split)
    except ValueError as e:
        _fail(str(e))
    chunks = engine.get_document_with_chunks(id).chunk_keys
    if _get_json_output():
        typer.echo(json.dumps({**metadata.to_record(), "chunk_keys": chunks}))
    else:
        typer.echo(f"{id} ({len(chunks) - 1} chunks)")


@app.command("put-file")
def put_file(
    path: Annotated[Path, typer.Argument(help="File to store", exists=True, dir_okay=False)],
    id: Annotated[Optional[str], typer.Option(
        "--id", help="Document id (default: the file name)"
    )] = None,
    tag: TagOption = None,
    mime_type: Annotated[Optional[str], typer.Option(
        "--mime", help="MIME type (default: inferred from extension)"
    )] = None,
    no_split: NoSplitOption = False,
):
    """Store a file. Binary files are summarized by the media provider."""
    tags = _parse_tags(tag)
    doc_id = id or path.name
    content_type = mime_type or infer_mime_type(path.name)
    engine = _get_engine()
    try:
        metadata = engine.store_binary(
            doc_id,
            path.read_bytes(),
            content_type,
            tags=tags,
            original_path=str(path.resolve()),
            split=not no_split,
        )
    except ValueError as e:
        _fail(str(e))
    if _get_json_output():
        typer.echo(json.dumps(metadata.to_record()))
    else:
        suffix = " (summarized)" if metadata.summary else ""
        typer.echo(f"{doc_id} [{metadata.mime_type}, {metadata.size_bytes} bytes]{suffix}")


@app.command()
def get(
    id: Annotated[str, typer.Argument(help="Document id or chunk key")],
    chunk: Annotated[bool, typer.Option(
        "--chunk", "-c", help="Treat the argument as a chunk key"
    )] = False,
    meta: Annotated[bool, typer.Option(
        "--meta", "-m", help="Show the metadata instead of the content"
    )] = False,
):
    """Print a document, a single chunk, or a document's metadata."""
    engine = _get_engine()
    try:
        if chunk:
            typer.echo(engine.get_chunk(id))
        elif meta:
            metadata = engine.get_metadata(id)
            if _get_json_output():
                typer.echo(json.dumps(metadata.to_record()))
            else:
                typer.echo(metadata.to_chunk_text())
        else:
            typer.echo(engine.get(id), nl=False)
    except NotFound as e:
        _fail(str(e))


@app.command()
def find(
    query: Annotated[str, typer.Argument(help="Search query text")],
    budget: Annotated[Optional[int], typer.Option(
        "--budget", "-b", help="Token budget for the returned chunks"
    )] = None,
    items: Annotated[bool, typer.Option(
        "--items", help="List matching document ids instead of chunks"
    )] = False,
):
    """Find the chunks most relevant to a query, within a token budget."""
    engine = _get_engine()
    if items:
        ids = engine.relevant_items(query)
        typer.echo(json.dumps(ids) if _get_json_output() else "\n".join(ids))
        return

    matches = engine.relevant_chunks(query, budget)
    if _get_json_output():
        typer.echo(json.dumps([
            {
                "similarity": m.similarity,
                "chunk_key": m.chunk_key,
                "document_id": m.parent_document_id,
                "text": m.text,
            }
            for m in matches
        ]))
        return
    for match in matches:
        typer.echo(f"--- {match.similarity:.4f}")
        typer.echo(engine.render(match))


@app.command("rm")
def remove(
    id: Annotated[str, typer.Argument(help="Document id")],
):
    """Remove a document and all of its chunks."""
    engine = _get_engine()
    if engine.remove(id):
        typer.echo(f"Removed {id}")
    else:
        typer.echo(f"Not found: {id}", err=True)


@app.command("mv")
def move(
    old_id: Annotated[str, typer.Argument(help="Current document id")],
    new_id: Annotated[str, typer.Argument(help="New document id")],
    no_split: NoSplitOption = False,
):
    """Move a document to a new id."""
    engine = _get_engine()
    try:
        engine.move(old_id, new_id, split=not no_split)
    except (NotFound, ValueError) as e:
        _fail(str(e))
    typer.echo(f"{old_id} -> {new_id}")


@app.command("ls")
def list_documents(
    folder: Annotated[Optional[str], typer.Argument(help="Folder prefix")] = None,
    flat: Annotated[bool, typer.Option(
        "--flat", help="Only documents directly in the folder"
    )] = False,
):
    """List document ids."""
    engine = _get_engine()
    ids = engine.list(folder, recursive=not flat)
    typer.echo(json.dumps(ids) if _get_json_output() else "\n".join(ids))


@app.command()
def tree():
    """Show document ids as a folder tree."""
    engine = _get_engine()
    typer.echo(engine.tree().render())


@app.command()
def meta(
    mime: Annotated[Optional[str], typer.Option("--mime", help="Exact MIME type")] = None,
    mime_prefix: Annotated[Optional[str], typer.Option(
        "--mime-prefix", help="MIME type prefix, e.g. image/"
    )] = None,
    path: Annotated[Optional[str], typer.Option(
        "--path", help="Original path pattern with * wildcards"
    )] = None,
    tag: TagOption = None,
    binary: Annotated[Optional[bool], typer.Option(
        "--binary/--text", help="Only binary or only text documents"
    )] = None,
    since: Annotated[Optional[str], typer.Option(
        "--since", help="Created after (ISO timestamp, UTC)"
    )] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum results")] = 100,
):
    """Find documents by metadata."""
    filter = MetadataFilter(
        mime_type=mime,
        mime_type_prefix=mime_prefix,
        path_pattern=path,
        custom_tags=_parse_tags(tag) or None,
        is_binary=binary,
        created_after=parse_utc_timestamp(since) if since else None,
        limit=limit,
    )
    engine = _get_engine()
    results = engine.find_metadata(filter)
    if _get_json_output():
        typer.echo(json.dumps([m.to_record() for m in results]))
    else:
        for m in results:
            typer.echo(f"{m.id}  {m.mime_type}  {m.size_bytes} bytes")


@app.command()
def reembed(
    id: Annotated[Optional[str], typer.Argument(help="Only this document")] = None,
):
    """Regenerate embeddings whose source text has changed."""
    engine = _get_engine()
    try:
        report = engine.embed(id) if id else engine.update_embeddings()
    except NotFound as e:
        _fail(str(e))
    if _get_json_output():
        typer.echo(json.dumps(vars(report)))
    else:
        typer.echo(
            f"checked {report.checked}, regenerated {report.regenerated}, "
            f"unchanged {report.skipped}, missing {report.missing}"
        )


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="ragstore CLI", store_path=_store_override)
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
