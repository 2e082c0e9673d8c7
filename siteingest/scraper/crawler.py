"""Depth-bounded, single-host website crawler.

``Crawler.run`` walks a site from its root URL and sends every extracted
chunk to a sink (normally :class:`~siteingest.rag.ingestor.VectorStoreSink`):

    pop target → mark visited → fetch (auth retry, redirects) → extract
    chunks → store → queue same-host links at depth + 1

Traversal uses an explicit work list instead of recursion.  With one
worker it is a LIFO stack, giving the classic depth-first order.  With more
workers, sibling pages are fetched on a thread pool; the visited set and
the token refresh are both guarded so no page is fetched twice and no
token is requested twice.

Failures never escape a single page: a broken link, a timeout, a 404, or a
chunk that fails to store is logged and the crawl moves on.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Iterable, List, Optional, Protocol, Sequence

import httpx

from siteingest.db.models import StoreResult
from siteingest.errors import (
    AuthFailure,
    AuthProviderError,
    ConfigurationError,
    ExtractionError,
    MalformedUrlError,
    StorageError,
    TransientFetchError,
)
from siteingest.scraper.auth import AuthSession
from siteingest.scraper.extractor import extract_chunks, extract_links, parse_html
from siteingest.scraper.fetcher import fetch_page
from siteingest.scraper.models import CrawlStats, CrawlTarget, ExtractedChunk
from siteingest.scraper.urls import filter_links, host_of, is_absolute, normalize, resolve

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
DEFAULT_LOGIN_PATTERNS = ("login.microsoftonline.com", "/.auth/login")
# Redirects that land on the same canonical URL (``/docs`` → ``/docs/``)
# are followed in place, at most this many times per page.
MAX_INPLACE_REDIRECTS = 5


class ChunkSink(Protocol):
    def store(self, chunk: ExtractedChunk) -> StoreResult: ...


class Crawler:
    """Crawls one host and routes page chunks to *sink*.

    Args:
        client: Long-lived HTTP client with redirects disabled
            (see :func:`~siteingest.scraper.fetcher.create_client`).
        sink: Receives every extracted chunk.
        auth: Optional bearer-token session; ``None`` crawls anonymously.
        workers: ``1`` for sequential depth-first traversal, more to fetch
            sibling pages concurrently.
        max_pages: Stop after this many pages were visited (``0`` = no limit).
        login_patterns: Substrings of a redirect ``Location`` that mean
            "the identity provider wants an interactive login".
    """

    def __init__(
        self,
        client: httpx.Client,
        sink: ChunkSink,
        auth: Optional[AuthSession] = None,
        *,
        workers: int = 1,
        max_pages: int = 0,
        login_patterns: Sequence[str] = DEFAULT_LOGIN_PATTERNS,
    ) -> None:
        self.client = client
        self.sink = sink
        self.auth = auth
        self.workers = max(1, workers)
        self.max_pages = max(0, max_pages)
        self.login_patterns = [p.lower() for p in login_patterns if p]

        self._visited: set[str] = set()
        self._allowed_hosts: set[str] = set()
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self.stats = CrawlStats()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------
    def stop(self) -> None:
        """Abort the crawl: no new page is started and queued pages are dropped."""
        if not self._stop.is_set():
            logger.warning("Crawl cancellation requested.")
        self._stop.set()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    @property
    def visited(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._visited)

    def run(self, root_url: str, max_depth: int = 10) -> CrawlStats:
        """Crawl from *root_url* down to *max_depth* (inclusive) and return stats.

        Raises:
            ConfigurationError: If *root_url* is not an absolute http(s) URL
                or *max_depth* is negative.
        """
        root_url = (root_url or "").strip()
        if not is_absolute(root_url) or not root_url.lower().startswith(("http://", "https://")):
            raise ConfigurationError(f"Root URL must be an absolute http(s) URL, got {root_url!r}")
        if max_depth < 0:
            raise ConfigurationError(f"max_depth must be >= 0, got {max_depth}")

        self._visited = set()
        self._allowed_hosts = {host_of(root_url)}
        self._stop.clear()
        self.stats = CrawlStats()

        logger.info(
            "Starting crawl of %s (max depth %d, %d worker(s)).",
            root_url,
            max_depth,
            self.workers,
        )

        if self.auth is not None:
            try:
                self.auth.ensure_authenticated()
            except AuthProviderError as exc:
                # Each page retries on its own; a flaky start is not fatal.
                logger.warning("Initial authentication failed: %s", exc)

        root = CrawlTarget(url=root_url, depth=0)
        try:
            if self.workers == 1:
                self._run_sequential(root, max_depth)
            else:
                self._run_parallel(root, max_depth)
        except KeyboardInterrupt:
            self.stop()

        self.stats.cancelled = self._stop.is_set()
        self.stats.visited_urls = sorted(self._visited)
        logger.info(
            "Crawl finished: %d visited, %d fetched, %d failed, %d chunk(s) stored, "
            "%d duplicate(s), %d chunk failure(s)%s.",
            self.stats.visited,
            self.stats.fetched,
            self.stats.failed,
            self.stats.chunks_stored,
            self.stats.chunks_duplicate,
            self.stats.chunks_failed,
            " (cancelled)" if self.stats.cancelled else "",
        )
        return self.stats

    # ------------------------------------------------------------------
    # Traversal strategies
    # ------------------------------------------------------------------
    def _run_sequential(self, root: CrawlTarget, max_depth: int) -> None:
        stack: List[CrawlTarget] = [root]
        while stack and not self._stop.is_set():
            target = stack.pop()
            discovered = self._visit(target, max_depth)
            # Reversed so the first link on the page is crawled first.
            stack.extend(reversed(discovered))

    def _run_parallel(self, root: CrawlTarget, max_depth: int) -> None:
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="crawl") as pool:
            pending: set[Future] = {pool.submit(self._visit, root, max_depth)}
            try:
                while pending:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        if future.cancelled():
                            continue
                        discovered = future.result()
                        if self._stop.is_set():
                            continue
                        for target in discovered:
                            if self._is_visited(target.url):
                                continue
                            pending.add(pool.submit(self._visit, target, max_depth))
                    if self._stop.is_set():
                        for future in pending:
                            future.cancel()
            except KeyboardInterrupt:
                self.stop()
                for future in pending:
                    future.cancel()
                raise

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------
    def _bump(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self.stats, counter, getattr(self.stats, counter) + amount)

    def _is_visited(self, url: str) -> bool:
        try:
            canonical = normalize(url)
        except MalformedUrlError:
            return True
        with self._lock:
            return canonical in self._visited

    def _mark_visited(self, canonical: str) -> bool:
        """Atomically add *canonical* to the visited set.

        Returns ``False`` if it was already there or the page budget is spent.
        """
        with self._lock:
            if canonical in self._visited:
                return False
            budget_spent = bool(self.max_pages) and len(self._visited) >= self.max_pages
            if not budget_spent:
                self._visited.add(canonical)
                self.stats.visited += 1
                return True
        logger.warning("Page budget of %d reached; stopping.", self.max_pages)
        self.stop()
        return False

    def _is_login_redirect(self, location: str) -> bool:
        lowered = location.lower()
        return any(pattern in lowered for pattern in self.login_patterns)

    # ------------------------------------------------------------------
    # Per-page work
    # ------------------------------------------------------------------
    def _visit(self, target: CrawlTarget, max_depth: int) -> List[CrawlTarget]:
        """Visit one target; return the targets it leads to.  Never raises."""
        if self._stop.is_set() or target.depth > max_depth:
            return []
        try:
            canonical = normalize(target.url)
        except MalformedUrlError as exc:
            logger.warning("Skipping target: %s", exc)
            return []
        if not self._mark_visited(canonical):
            return []

        logger.info("Crawling %s at depth %d", canonical, target.depth)
        try:
            return self._process(target, canonical, max_depth)
        except (TransientFetchError, AuthProviderError, ExtractionError) as exc:
            logger.warning("Abandoning %s: %s", canonical, exc)
        except Exception:
            logger.exception("Unexpected error while crawling %s", canonical)
        self._bump("failed")
        return []

    def _abandon(self, message: str, *args: object) -> List[CrawlTarget]:
        logger.warning(message, *args)
        self._bump("failed")
        return []

    def _process(self, target: CrawlTarget, canonical: str, max_depth: int) -> List[CrawlTarget]:
        url = target.url
        for _hop in range(MAX_INPLACE_REDIRECTS + 1):
            result = fetch_page(self.client, url, self.auth)
            if result.status_code not in REDIRECT_STATUSES:
                break

            location = (result.location or "").strip()
            if not location:
                return self._abandon("HTTP %s without Location for %s", result.status_code, url)
            if self._is_login_redirect(location):
                return self._abandon(
                    "Redirected to a login page (%s) for %s; token missing or rejected.",
                    location,
                    url,
                )
            try:
                redirect_url = resolve(url, location)
                redirect_canonical = normalize(redirect_url)
            except MalformedUrlError as exc:
                return self._abandon("Bad redirect from %s: %s", url, exc)

            self._bump("redirects")
            if redirect_canonical == canonical:
                logger.info("Following redirect in place: %s -> %s", url, redirect_url)
                url = redirect_url
                continue

            redirect_host = host_of(redirect_url)
            with self._lock:
                if redirect_host not in self._allowed_hosts:
                    if target.depth != 0:
                        logger.info("Ignoring off-site redirect %s -> %s", url, redirect_url)
                        return []
                    # The root moved host (e.g. apex → www): the site lives there now.
                    self._allowed_hosts.add(redirect_host)
            logger.info("Redirect %s -> %s", url, redirect_url)
            return [CrawlTarget(url=redirect_url, depth=target.depth)]
        else:
            return self._abandon("Too many redirects for %s", target.url)

        if result.status_code in (401, 403):
            return self._abandon("%s", AuthFailure(url, result.status_code))
        if not result.is_success:
            return self._abandon("Failed to retrieve %s: HTTP %s", url, result.status_code)

        self._bump("fetched")
        if not result.is_html:
            logger.info("Skipping non-HTML content (%s) at %s", result.content_type, url)
            return []

        logger.debug("Received %d characters from %s", len(result.html), url)
        soup = parse_html(result.html)
        self._route_chunks(extract_chunks(soup, canonical))

        if target.depth >= max_depth or self._stop.is_set():
            return []
        links = filter_links(url, extract_links(soup), host_of(url))
        logger.info("Found %d same-host link(s) on %s", len(links), canonical)
        return [CrawlTarget(url=link, depth=target.depth + 1) for link in links]

    def _route_chunks(self, chunks: Iterable[ExtractedChunk]) -> None:
        for chunk in chunks:
            if self._stop.is_set():
                return
            try:
                result = self.sink.store(chunk)
            except StorageError as exc:
                logger.error("Could not store chunk: %s", exc)
                self._bump("chunks_failed")
                continue
            except Exception:
                logger.exception("Sink failed on a chunk of %s", chunk.source_url)
                self._bump("chunks_failed")
                continue
            if result is StoreResult.ALREADY_EXISTS:
                self._bump("chunks_duplicate")
            else:
                self._bump("chunks_stored")
