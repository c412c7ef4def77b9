"""CLI entry point for session-archive."""

import json
import logging
import os
import sys
from pathlib import Path

import click
import uvicorn

from .config import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT
from .core import DetailStatus
from .export import detail_to_json, detail_to_markdown, meta_to_dict
from .service import ArchiveService

sessions_dir_option = click.option(
    "--sessions-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Session archive directory (default: $ARCHIVE_SESSIONS_PATH or ~/.openclaw/agents/main/sessions).",
)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Logging verbosity.",
)
def main(log_level: str):
    """Browse agent session logs: summaries, timelines and a web API."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@sessions_dir_option
def serve(port: int, host: str, sessions_dir: Path | None):
    """Start the web API."""
    if sessions_dir is not None:
        os.environ["ARCHIVE_SESSIONS_PATH"] = str(sessions_dir)
    click.echo(f"Starting session-archive on http://{host}:{port}")
    uvicorn.run("session_archive.server:app", host=host, port=port, reload=False)


@main.command("list")
@click.option("--limit", default=DEFAULT_LIST_LIMIT, type=click.IntRange(1, MAX_LIST_LIMIT), help="Number of sessions.")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")
@sessions_dir_option
def list_command(limit: int, as_json: bool, sessions_dir: Path | None):
    """List sessions, most recently modified first."""
    result = ArchiveService(directory=sessions_dir).list_summaries(limit=limit)

    if as_json:
        click.echo(json.dumps([meta_to_dict(m) for m in result.sessions], indent=2, ensure_ascii=False))
        return

    if not result.sessions:
        click.echo("No sessions found.")
        return

    for meta in result.sessions:
        modified = meta.modified_at.strftime("%Y-%m-%d %H:%M") if meta.modified_at else "-"
        prompt = meta.prompt.splitlines()[0][:60] if meta.prompt else ""
        click.echo(
            f"{modified}  {meta.id:<36}  {meta.model:<24}  "
            f"{meta.message_count:>4} msgs  ${meta.total_cost:.4f}  {prompt}"
        )


@main.command()
@click.argument("session_id")
@click.option("--format", "fmt", type=click.Choice(["md", "json"]), default="md", help="Output format.")
@sessions_dir_option
def show(session_id: str, fmt: str, sessions_dir: Path | None):
    """Print one session's timeline."""
    result = ArchiveService(directory=sessions_dir).get_detail(session_id)

    if result.status is DetailStatus.NOT_FOUND:
        click.echo(f"Session not found: {session_id}", err=True)
        sys.exit(1)
    if result.status is DetailStatus.ERROR:
        click.echo(f"Failed to read session {session_id}: {result.error}", err=True)
        sys.exit(1)

    if fmt == "json":
        click.echo(detail_to_json(result.detail))
    else:
        click.echo(detail_to_markdown(result.detail))
