"""HTTP fetcher with bearer-token authentication and explicit redirects.

The transport never follows redirects on its own: the crawler has to see a
302 to the identity provider's login page to know the token was refused.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from siteingest.config import Settings, settings as default_settings
from siteingest.errors import TransientFetchError
from siteingest.scraper.auth import AuthSession
from siteingest.scraper.models import FetchResult

logger = logging.getLogger(__name__)

_AUTH_REJECTED = (401, 403)


def create_client(config: Optional[Settings] = None) -> httpx.Client:
    """Build the long-lived HTTP client shared by a whole crawl.

    Redirects are disabled and every request times out after
    ``settings.request_timeout`` seconds.
    """
    config = config or default_settings
    return httpx.Client(
        headers={
            "User-Agent": config.user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
        },
        timeout=config.request_timeout,
        follow_redirects=False,
    )


def _get(client: httpx.Client, url: str, auth: Optional[AuthSession]) -> httpx.Response:
    headers = {}
    if auth is not None:
        header = auth.authorization_header()
        if header:
            headers["Authorization"] = header
    logger.debug("GET %s", url)
    return client.get(url, headers=headers)


def _to_result(url: str, response: httpx.Response) -> FetchResult:
    location = response.headers.get("location")
    text = response.text if 200 <= response.status_code < 300 else ""
    return FetchResult(
        url=url,
        status_code=response.status_code,
        html=text,
        content_type=response.headers.get("content-type", ""),
        location=location,
    )


def fetch_page(
    client: httpx.Client,
    url: str,
    auth: Optional[AuthSession] = None,
) -> FetchResult:
    """Fetch *url* once, retrying a single time after a forced token refresh.

    The refresh only happens when authentication is enabled and the server
    answers 401 or 403.  A second rejection is returned as-is; the caller
    decides what to do with it.

    Raises:
        TransientFetchError: On network errors and timeouts.
        AuthProviderError: If a token could not be obtained transiently.
    """
    if auth is not None:
        auth.ensure_authenticated()

    try:
        used_token = auth.token if auth is not None else None
        response = _get(client, url, auth)
        logger.info("HTTP %s for %s", response.status_code, url)

        if response.status_code in _AUTH_REJECTED and auth is not None and auth.enabled:
            logger.warning(
                "Got HTTP %s for %s; refreshing token and retrying.",
                response.status_code,
                url,
            )
            auth.force_refresh(stale_token=used_token)
            response = _get(client, url, auth)
            logger.info("Retry: HTTP %s for %s", response.status_code, url)
    except httpx.HTTPError as exc:
        raise TransientFetchError(f"Fetching {url} failed: {exc}") from exc

    return _to_result(url, response)
