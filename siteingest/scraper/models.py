"""Data models for the crawl pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field

HTML_CONTENT_TYPES = frozenset({"text/html", "application/xhtml+xml"})


@dataclass(frozen=True)
class CrawlTarget:
    """One URL waiting to be visited, with its distance from the root."""

    url: str
    depth: int


@dataclass
class FetchResult:
    """The final HTTP response for a target after auth retry handling."""

    url: str
    status_code: int
    html: str = ""
    content_type: str = ""
    location: str | None = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_html(self) -> bool:
        # Servers that omit Content-Type are given the benefit of the doubt.
        if not self.content_type:
            return True
        mime = self.content_type.split(";", 1)[0].strip().lower()
        return mime in HTML_CONTENT_TYPES


@dataclass(frozen=True)
class ExtractedChunk:
    """A bounded span of page text headed for one embedding + store call."""

    source_url: str
    text: str
    fingerprint: str


@dataclass
class CrawlStats:
    """Counters collected over one :meth:`Crawler.run`."""

    visited: int = 0
    fetched: int = 0
    failed: int = 0
    redirects: int = 0
    chunks_stored: int = 0
    chunks_duplicate: int = 0
    chunks_failed: int = 0
    cancelled: bool = False
    visited_urls: list[str] = field(default_factory=list)
