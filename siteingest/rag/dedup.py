"""Content fingerprints used as per-URL dedup keys."""

from __future__ import annotations

import hashlib


def fingerprint(text: str) -> str:
    """Return the SHA-256 of *text*'s UTF-8 bytes as 64 lowercase hex chars.

    The store treats ``(url, fingerprint)`` as the identity of a chunk, so
    the same text under two different URLs is stored twice.
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
