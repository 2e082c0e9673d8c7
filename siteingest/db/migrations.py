"""Database initialisation helpers.

``init_db(conn)`` is idempotent and safe to call on an existing database.
``reset_db(conn)`` drops the store and recreates it empty, which is how a
fresh ingestion run starts.
"""

from __future__ import annotations

import sqlite3

from siteingest.config import settings


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _read_schema() -> str:
    """Load schema.sql and inject runtime values (e.g. embedding dimension)."""
    template = settings.schema_path.read_text(encoding="utf-8")
    return template.replace("{embedding_dim}", str(settings.embedding_dim))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def init_db(conn: sqlite3.Connection) -> None:
    """Create the chunk table, its indexes, and the vector table.

    Every DDL statement uses ``IF NOT EXISTS`` so calling this repeatedly on
    the same database is safe.

    Args:
        conn: An open, configured SQLite connection (sqlite-vec already loaded).
    """
    # executescript() issues an implicit COMMIT first, which is fine for DDL.
    conn.executescript(_read_schema())


def reset_db(conn: sqlite3.Connection) -> None:
    """Drop every stored chunk and vector, then recreate the empty schema."""
    conn.executescript(
        """
        DROP TABLE IF EXISTS chunks_vec;
        DROP TABLE IF EXISTS chunks;
        """
    )
    init_db(conn)
