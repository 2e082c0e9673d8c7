"""Dataclass models representing DB rows.

These are plain Python objects – not ORM models.  The DB layer serialises /
deserialises to and from these types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass
class ChunkRecord:
    id: str
    url: str
    text_hash: str
    text: str
    created_at: int

    def __str__(self) -> str:
        return f"{self.id} url={self.url} hash={self.text_hash[:12]} text={self.text[:100]!r}"


class StoreResult(str, Enum):
    STORED = "stored"
    ALREADY_EXISTS = "already_exists"
