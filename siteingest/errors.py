"""Exception hierarchy for the crawl-and-chunk pipeline.

Only :class:`ConfigurationError` is meant to stop the process.  Every other
error is contained to the smallest unit it affects (one link, one fetch, one
chunk) by the code that catches it.
"""

from __future__ import annotations


class SiteIngestError(Exception):
    """Base class for all SiteIngest errors."""


class ConfigurationError(SiteIngestError):
    """Invalid or missing settings discovered before the crawl starts."""


class MalformedUrlError(SiteIngestError):
    """A link that cannot be parsed as an absolute http(s) URL."""

    def __init__(self, url: str, reason: str = "not an absolute http(s) URL") -> None:
        super().__init__(f"Malformed URL {url!r}: {reason}")
        self.url = url


class TransientFetchError(SiteIngestError):
    """Network error or timeout while fetching a page."""


class AuthFailure(SiteIngestError):
    """A page kept answering 401/403 after a forced token refresh."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"Authorization rejected for {url} (HTTP {status_code})")
        self.url = url
        self.status_code = status_code


class AuthProviderError(SiteIngestError):
    """The credential provider could not issue a token.

    ``permanent`` errors (bad client secret, unknown tenant...) disable
    authentication for the rest of the run; transient ones only fail the
    fetch that triggered them.
    """

    def __init__(self, message: str, *, permanent: bool = False) -> None:
        super().__init__(message)
        self.permanent = permanent


class ExtractionError(SiteIngestError):
    """Markup that could not be parsed at all."""


class StorageError(SiteIngestError):
    """One chunk failed to embed or persist."""
