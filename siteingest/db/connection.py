"""SQLite store connections.

One connection serves a whole crawl.  Worker threads share it, and
:class:`~siteingest.rag.ingestor.VectorStoreSink` serialises every access
with its own lock, so the connection is opened with
``check_same_thread=False``.

Usage::

    from siteingest.db.connection import open_store

    with open_store(fresh=True) as conn:
        sink = VectorStoreSink(conn)
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import sqlite_vec

from siteingest.config import settings
from siteingest.db.migrations import init_db, reset_db

# Seconds a writer waits on a lock held by another process (e.g. `db stats`).
_BUSY_TIMEOUT = 10.0


def get_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """Open the vector store with sqlite-vec loaded.

    ``:memory:`` is accepted for tests.  Rows come back as
    :class:`sqlite3.Row`.
    """
    path = db_path or settings.db_path
    if str(path) != ":memory:":
        settings.ensure_workspace()

    conn = sqlite3.connect(str(path), timeout=_BUSY_TIMEOUT, check_same_thread=False)
    conn.row_factory = sqlite3.Row

    conn.enable_load_extension(True)
    sqlite_vec.load(conn)
    conn.enable_load_extension(False)

    # Readers such as `db stats` never block the crawl's writer.
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


@contextmanager
def open_store(
    db_path: Optional[Path] = None, *, fresh: bool = False
) -> Iterator[sqlite3.Connection]:
    """Yield a connection whose schema exists, and close it afterwards.

    With ``fresh`` every stored chunk is dropped first.
    """
    conn = get_connection(db_path)
    try:
        if fresh:
            reset_db(conn)
        else:
            init_db(conn)
        yield conn
    finally:
        conn.close()
