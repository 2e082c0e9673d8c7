"""Operations on the ``chunks`` and ``chunks_vec`` tables."""

from __future__ import annotations

import sqlite3
import uuid
from time import time
from typing import Optional

import sqlite_vec

from siteingest.db.models import ChunkRecord, StoreResult


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _row_to_chunk(row: sqlite3.Row) -> ChunkRecord:
    return ChunkRecord(
        id=row["chunk_id"],
        url=row["url"],
        text_hash=row["text_hash"],
        text=row["text"],
        created_at=row["created_at"],
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def chunk_exists(conn: sqlite3.Connection, url: str, text_hash: str) -> bool:
    """Return ``True`` if a chunk with *text_hash* is already stored for *url*."""
    row = conn.execute(
        "SELECT 1 FROM chunks WHERE url = ? AND text_hash = ? LIMIT 1",
        (url, text_hash),
    ).fetchone()
    return row is not None


def store_chunk(
    conn: sqlite3.Connection,
    url: str,
    text: str,
    text_hash: str,
    embedding: list[float],
) -> StoreResult:
    """Insert a chunk and its vector in one transaction.

    ``(url, text_hash)`` is unique: storing the same text twice under the
    same URL is rejected with :attr:`StoreResult.ALREADY_EXISTS` and leaves
    the database untouched.
    """
    with conn:
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO chunks (chunk_id, url, text_hash, text, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (str(uuid.uuid4()), url, text_hash, text, int(time())),
        )
        if cursor.rowcount == 0:
            return StoreResult.ALREADY_EXISTS

        conn.execute(
            "INSERT INTO chunks_vec(rowid, embedding) VALUES (?, ?)",
            (cursor.lastrowid, sqlite_vec.serialize_float32(embedding)),
        )
    return StoreResult.STORED


def get_chunk(conn: sqlite3.Connection, chunk_id: str) -> Optional[ChunkRecord]:
    """Fetch a single chunk by its UUID.  Returns ``None`` if not found."""
    row = conn.execute("SELECT * FROM chunks WHERE chunk_id = ?", (chunk_id,)).fetchone()
    return _row_to_chunk(row) if row else None


def list_chunks(conn: sqlite3.Connection, url: Optional[str] = None) -> list[ChunkRecord]:
    """Return stored chunks in insertion order, optionally for one URL only."""
    if url:
        rows = conn.execute(
            "SELECT * FROM chunks WHERE url = ? ORDER BY id", (url,)
        ).fetchall()
    else:
        rows = conn.execute("SELECT * FROM chunks ORDER BY id").fetchall()
    return [_row_to_chunk(r) for r in rows]


def count_chunks(conn: sqlite3.Connection) -> tuple[int, int]:
    """Return ``(chunk_count, distinct_url_count)``."""
    row = conn.execute("SELECT COUNT(*), COUNT(DISTINCT url) FROM chunks").fetchone()
    return int(row[0]), int(row[1])


def count_vectors(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT COUNT(*) FROM chunks_vec").fetchone()
    return int(row[0])
