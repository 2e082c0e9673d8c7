"""Content extraction: turns page HTML into word-bounded text chunks.

The document tree is walked depth-first.  Structural subtrees (scripts,
navigation, headers, footers, tables of contents) are skipped wholesale.
Text is only taken from *leaf content* elements, i.e. ``<p>``/``<div>``
elements without a direct ``<p>``/``<div>`` child, so no text is captured
twice by an ancestor and a descendant.

Fragments accumulate until they hold 200 words, then leave as one chunk.
A chunk longer than 28 000 characters (7000 tokens at ~4 chars/token) is cut
once near a sentence boundary.
"""

from __future__ import annotations

import re
from typing import Iterator, List, Optional, Union

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup
from bs4.element import NavigableString, PreformattedString, Tag

from siteingest.errors import ExtractionError
from siteingest.rag.dedup import fingerprint
from siteingest.scraper.models import ExtractedChunk

IGNORED_TAGS = frozenset({"script", "style", "header", "footer", "nav"})
IGNORED_IDENTIFIERS = frozenset({"header", "footer", "nav", "toc", "table-of-contents"})
CONTENT_TAGS = frozenset({"p", "div"})

WORDS_PER_CHUNK = 200
MAX_CHUNK_CHARS = 7000 * 4
SPLIT_SEARCH_FROM = 5000
SPLIT_CAP = 7000

_WHITESPACE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _attr_value(tag: Tag, name: str) -> str:
    """Return an attribute as one lower-cased string (``class`` is a list in bs4)."""
    value = tag.get(name)
    if value is None:
        return ""
    if isinstance(value, list):
        value = " ".join(value)
    return value.strip().lower()


def _is_ignored(tag: Tag) -> bool:
    if tag.name in IGNORED_TAGS:
        return True
    return (
        _attr_value(tag, "class") in IGNORED_IDENTIFIERS
        or _attr_value(tag, "id") in IGNORED_IDENTIFIERS
    )


def _is_leaf_content(tag: Tag) -> bool:
    if tag.name not in CONTENT_TAGS:
        return False
    return not any(
        isinstance(child, Tag) and child.name in CONTENT_TAGS for child in tag.children
    )


def _inner_text(tag: Tag) -> str:
    """Concatenate the text under *tag*, leaving out ignored subtrees and comments."""
    parts: List[str] = []
    stack: list = [tag]
    while stack:
        node = stack.pop()
        if isinstance(node, PreformattedString):
            continue
        if isinstance(node, NavigableString):
            parts.append(str(node))
            continue
        if isinstance(node, Tag):
            if node is not tag and _is_ignored(node):
                continue
            stack.extend(reversed(node.contents))
    return "".join(parts)


def clean_text(raw: str) -> Optional[str]:
    """Collapse whitespace in text the parser has already entity-decoded.

    Returns ``None`` when the text has no letter or digit in it.
    """
    text = raw.strip()
    if not text or not any(ch.isalnum() for ch in text):
        return None
    return _WHITESPACE.sub(" ", text).strip()


def split_oversized(text: str) -> List[str]:
    """Cut a chunk longer than ``MAX_CHUNK_CHARS`` into two parts.

    The cut lands just after the first ``.`` at or after offset 5000, but
    never later than offset 7000.  Only one cut is made, so the second part
    can itself still exceed the limit.
    """
    if len(text) <= MAX_CHUNK_CHARS:
        return [text]

    dot = text.find(".", SPLIT_SEARCH_FROM)
    breakpoint_ = min(dot + 1, SPLIT_CAP) if dot >= 0 else SPLIT_CAP
    return [text[:breakpoint_], text[breakpoint_:]]


def parse_html(markup: str) -> BeautifulSoup:
    """Parse *markup* leniently.

    Raises:
        ExtractionError: If the parser rejects the document outright.
    """
    try:
        return BeautifulSoup(markup, "html.parser")
    except (ParserRejectedMarkup, ValueError) as exc:
        raise ExtractionError(f"Could not parse HTML: {exc}") from exc


def _as_soup(document: Union[str, BeautifulSoup]) -> BeautifulSoup:
    if isinstance(document, BeautifulSoup):
        return document
    return parse_html(document)


# ---------------------------------------------------------------------------
# Accumulator
# ---------------------------------------------------------------------------

class ChunkAccumulator:
    """Buffers text fragments of one page and emits them as chunks."""

    def __init__(self, source_url: str, words_per_chunk: int = WORDS_PER_CHUNK) -> None:
        self.source_url = source_url
        self.words_per_chunk = words_per_chunk
        self._fragments: List[str] = []
        self._words = 0

    @property
    def pending_words(self) -> int:
        return self._words

    def add(self, fragment: str) -> List[ExtractedChunk]:
        """Buffer *fragment*; return the chunks flushed as a result (maybe none)."""
        self._fragments.append(fragment)
        self._words += len(fragment.split(" "))
        if self._words >= self.words_per_chunk:
            return self.flush()
        return []

    def flush(self) -> List[ExtractedChunk]:
        """Emit whatever is buffered and reset."""
        if not self._fragments:
            return []
        combined = " ".join(self._fragments)
        self._fragments = []
        self._words = 0
        return [
            ExtractedChunk(source_url=self.source_url, text=part, fingerprint=fingerprint(part))
            for part in split_oversized(combined)
        ]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def iter_fragments(document: Union[str, BeautifulSoup]) -> Iterator[str]:
    """Yield cleaned text of every leaf content element, in document order."""
    stack: list = [_as_soup(document)]
    while stack:
        node = stack.pop()
        if not isinstance(node, Tag) or _is_ignored(node):
            continue
        if _is_leaf_content(node):
            text = clean_text(_inner_text(node))
            if text:
                yield text
            continue
        stack.extend(reversed([c for c in node.contents if isinstance(c, Tag)]))


def extract_chunks(
    document: Union[str, BeautifulSoup],
    source_url: str,
    words_per_chunk: int = WORDS_PER_CHUNK,
) -> Iterator[ExtractedChunk]:
    """Lazily yield the chunks of one page, each tagged with *source_url*."""
    accumulator = ChunkAccumulator(source_url, words_per_chunk)
    for fragment in iter_fragments(document):
        yield from accumulator.add(fragment)
    yield from accumulator.flush()


def extract_links(document: Union[str, BeautifulSoup]) -> List[str]:
    """Return the raw ``href`` values of every ``<a href>`` in document order."""
    soup = _as_soup(document)
    links: List[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor.get("href")
        if isinstance(href, list):
            href = " ".join(href)
        if href and href.strip():
            links.append(href.strip())
    return links
