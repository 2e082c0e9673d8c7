"""URL resolution, canonicalisation, and same-host scoping.

The canonical form produced by :func:`normalize` is the crawl identity of a
page: it keys the visited set and the storage partition.  Two URLs that
differ only by fragment or by a trailing slash are the same page.
"""

from __future__ import annotations

import logging
from typing import Iterable, List
from urllib.parse import urljoin, urlsplit, urlunsplit

from siteingest.errors import MalformedUrlError

logger = logging.getLogger(__name__)

_CRAWLABLE_SCHEMES = {"http", "https"}


def _split(url: str):
    try:
        parts = urlsplit(url.strip())
        # Accessing .port validates the netloc (raises on garbage ports).
        parts.port  # noqa: B018
    except ValueError as exc:
        raise MalformedUrlError(url, str(exc)) from exc
    return parts


def is_absolute(url: str) -> bool:
    """Return ``True`` if *url* carries both a scheme and a host."""
    try:
        parts = _split(url)
    except MalformedUrlError:
        return False
    return bool(parts.scheme and parts.netloc)


def resolve(base: str, candidate: str) -> str:
    """Resolve *candidate* against *base* using standard URI resolution.

    An already absolute candidate is returned unchanged.

    Raises:
        MalformedUrlError: If the result is still not an absolute URI.
    """
    candidate = candidate.strip()
    if is_absolute(candidate):
        return candidate

    try:
        absolute = urljoin(base, candidate)
    except ValueError as exc:
        raise MalformedUrlError(candidate, str(exc)) from exc

    parts = _split(absolute)
    if not (parts.scheme and parts.netloc):
        raise MalformedUrlError(candidate, f"cannot be resolved against {base!r}")
    return absolute


def normalize(url: str) -> str:
    """Return the canonical form of an absolute *url*.

    * the fragment is dropped,
    * the query is kept (an empty ``?`` disappears),
    * trailing slashes are stripped from the path,
    * scheme and host are lower-cased.

    ``normalize(normalize(u)) == normalize(u)`` for every input.

    Raises:
        MalformedUrlError: If *url* is not absolute.
    """
    parts = _split(url)
    if not (parts.scheme and parts.netloc):
        raise MalformedUrlError(url)

    path = parts.path.rstrip("/")
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), path, parts.query, "")
    )


def host_of(url: str) -> str:
    """Return the lower-cased host of *url* (empty string if none)."""
    return (_split(url).hostname or "").lower()


def is_same_host(url: str, reference_host: str) -> bool:
    """Case-insensitive comparison of *url*'s host with *reference_host*."""
    try:
        host = host_of(url)
    except MalformedUrlError:
        return False
    return bool(host) and host == reference_host.lower()


def filter_links(base_url: str, hrefs: Iterable[str], reference_host: str) -> List[str]:
    """Turn raw ``href`` values into canonical, same-host, crawlable URLs.

    Links are resolved against *base_url*, normalised, and kept only when
    they are http(s) and live on *reference_host*.  Malformed links are
    skipped.  Order of first appearance is preserved and duplicates removed.
    """
    seen: set[str] = set()
    links: List[str] = []
    for href in hrefs:
        if not href or not href.strip():
            continue
        try:
            absolute = resolve(base_url, href)
            canonical = normalize(absolute)
        except MalformedUrlError as exc:
            logger.debug("Skipping link: %s", exc)
            continue

        if urlsplit(canonical).scheme not in _CRAWLABLE_SCHEMES:
            continue
        if not is_same_host(canonical, reference_host):
            continue
        if canonical in seen:
            continue
        seen.add(canonical)
        links.append(canonical)
    return links
