"""Storage pipeline for crawled chunks.

``VectorStoreSink`` is where every :class:`ExtractedChunk` ends up:

    dedup check → embed → store chunk row + vector (one transaction)

The crawler only knows the :class:`~siteingest.scraper.crawler.ChunkSink`
protocol, so tests can swap in any object with a ``store`` method.
"""

from __future__ import annotations

import logging
import sqlite3
import struct
import threading
from typing import Callable

from siteingest.db.chunks import chunk_exists, store_chunk
from siteingest.db.models import StoreResult
from siteingest.errors import StorageError
from siteingest.rag.embedder import embed_text
from siteingest.scraper.models import ExtractedChunk

logger = logging.getLogger(__name__)


class VectorStoreSink:
    """Embeds chunks and persists them in the sqlite-vec store.

    Duplicates, i.e. the same fingerprint already stored for the same URL,
    are detected before the embedding call so they cost nothing.  Writes
    are serialised with a lock because crawl workers share one connection.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        embed: Callable[[str], list[float]] = embed_text,
    ) -> None:
        self.conn = conn
        self.embed = embed
        self._lock = threading.Lock()

    def store(self, chunk: ExtractedChunk) -> StoreResult:
        """Embed and store *chunk*.

        Raises:
            StorageError: If embedding or the database write fails.  Only
                this chunk is lost.
        """
        with self._lock:
            if chunk_exists(self.conn, chunk.source_url, chunk.fingerprint):
                logger.info(
                    "Duplicate chunk %s for %s; not stored.",
                    chunk.fingerprint[:12],
                    chunk.source_url,
                )
                return StoreResult.ALREADY_EXISTS

        try:
            embedding = self.embed(chunk.text)
        except Exception as exc:
            raise StorageError(f"Embedding failed for chunk of {chunk.source_url}: {exc}") from exc

        try:
            with self._lock:
                result = store_chunk(
                    self.conn,
                    url=chunk.source_url,
                    text=chunk.text,
                    text_hash=chunk.fingerprint,
                    embedding=embedding,
                )
        except (sqlite3.Error, struct.error, TypeError, ValueError) as exc:
            raise StorageError(f"Storing chunk of {chunk.source_url} failed: {exc}") from exc

        if result is StoreResult.STORED:
            logger.info("Stored chunk (%d chars) from %s", len(chunk.text), chunk.source_url)
        return result
