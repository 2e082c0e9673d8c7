"""SiteIngest CLI: crawl a website into the vector store.

Usage:
    python cli/main.py --help

Commands:
    crawl       Crawl a site and store embedded chunks
    db init     Create the store if it does not exist
    db reset    Drop and recreate the store
    db stats    Show how many chunks are stored
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from siteingest.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import signal
from typing import Optional

import typer

from siteingest.config import settings
from siteingest.db import open_store
from siteingest.db.chunks import count_chunks, count_vectors
from siteingest.errors import ConfigurationError
from siteingest.logging_config import setup_logging

app = typer.Typer(
    name="siteingest",
    help="Crawl a website into a vector-searchable store.",
    no_args_is_help=True,
)


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, "--log-level", help="Logging level."),
    log_json: bool = typer.Option(settings.log_json, "--log-json/--no-log-json", help="Emit JSON log lines."),
) -> None:
    """Configure logging for every command."""
    setup_logging(log_level, json_output=log_json)


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Vector store operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite store (create tables if they do not exist)."""
    with open_store():
        pass
    typer.echo(f"[db init] Store ready at {settings.db_path}")


@db_app.command("reset")
def db_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Delete every stored chunk and recreate an empty store."""
    if not yes:
        typer.confirm(f"Drop all chunks in {settings.db_path}?", abort=True)
    with open_store(fresh=True):
        pass
    typer.echo("[db reset] Store recreated (empty).")


@db_app.command("stats")
def db_stats() -> None:
    """Show chunk, URL, and vector counts."""
    with open_store() as conn:
        chunks, urls = count_chunks(conn)
        vectors = count_vectors(conn)
    typer.echo(f"[db stats] Chunks : {chunks}")
    typer.echo(f"[db stats] URLs   : {urls}")
    typer.echo(f"[db stats] Vectors: {vectors}")


# ---------------------------------------------------------------------------
# Crawl command
# ---------------------------------------------------------------------------
@app.command("crawl")
def crawl(
    root_url: Optional[str] = typer.Argument(
        None, help="Root URL. Defaults to https://$WEBSITE_HOSTNAME."
    ),
    max_depth: int = typer.Option(settings.max_depth, "--max-depth", help="Deepest link level to fetch (root is 0)."),
    workers: int = typer.Option(settings.crawl_workers, "--workers", help="Concurrent fetches (1 = sequential)."),
    max_pages: int = typer.Option(settings.max_pages, "--max-pages", help="Stop after this many pages (0 = unlimited)."),
    fresh: bool = typer.Option(False, "--fresh/--no-fresh", help="Empty the store before crawling."),
) -> None:
    """Crawl a website and store its chunks with their embeddings."""
    from siteingest.rag.ingestor import VectorStoreSink
    from siteingest.scraper.auth import AuthSession, credential_from_settings
    from siteingest.scraper.crawler import Crawler
    from siteingest.scraper.fetcher import create_client

    url = root_url or settings.root_url
    if not url:
        typer.echo("[crawl] No root URL given and WEBSITE_HOSTNAME is not set.", err=True)
        raise typer.Exit(1)

    if not settings.auth_audience:
        typer.echo("[crawl] EASYAUTH_AUDIENCE not set; crawling without authentication.")
        auth = None
    else:
        auth = AuthSession(credential_from_settings(settings), settings.auth_audience)

    with open_store(fresh=fresh) as conn, create_client(settings) as client:
        crawler = Crawler(
            client,
            VectorStoreSink(conn),
            auth,
            workers=workers,
            max_pages=max_pages,
            login_patterns=settings.login_redirect_patterns,
        )

        previous = signal.signal(signal.SIGTERM, lambda *_: crawler.stop())
        typer.echo(f"[crawl] Crawling {url!r} (max depth {max_depth}) …")
        try:
            stats = crawler.run(url, max_depth=max_depth)
        except ConfigurationError as exc:
            typer.echo(f"[crawl] {exc}", err=True)
            raise typer.Exit(1)
        finally:
            signal.signal(signal.SIGTERM, previous)

    typer.echo(f"[crawl] Pages visited : {stats.visited}")
    typer.echo(f"[crawl] Pages fetched : {stats.fetched}")
    typer.echo(f"[crawl] Pages failed  : {stats.failed}")
    typer.echo(f"[crawl] Chunks stored : {stats.chunks_stored}")
    typer.echo(f"[crawl] Duplicates    : {stats.chunks_duplicate}")
    typer.echo(f"[crawl] Chunk failures: {stats.chunks_failed}")
    if stats.cancelled:
        typer.echo("[crawl] Crawl was stopped before completion.")


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
