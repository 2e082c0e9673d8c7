"""Tests for the HTTP transport and the authenticated fetch protocol.

``respx`` patches ``httpx`` at the transport layer, so no real network calls
are made.  Credentials are faked; see ``tests/test_auth.py`` for the
providers themselves.
"""

from __future__ import annotations

from typing import List

import httpx
import pytest
import respx

from siteingest.config import Settings
from siteingest.errors import TransientFetchError
from siteingest.scraper.auth import AccessToken, AuthSession
from siteingest.scraper.fetcher import create_client, fetch_page
from siteingest.scraper.models import FetchResult

_URL = "https://example.com/page"


class CountingCredential:
    def __init__(self) -> None:
        self.calls = 0

    def get_token(self, scope: str) -> AccessToken:
        self.calls += 1
        return AccessToken(token=f"token-{self.calls}", expires_on=4_102_444_800.0)


@pytest.fixture()
def client():
    with httpx.Client(follow_redirects=False) as c:
        yield c


def _auth_header(request: httpx.Request) -> str:
    return request.headers.get("Authorization", "")


class TestCreateClient:
    def test_redirects_disabled_and_timeout_configured(self) -> None:
        cfg = Settings(request_timeout=12.5, user_agent="TestAgent/1.0")
        with create_client(cfg) as c:
            assert c.follow_redirects is False
            assert c.timeout.read == 12.5
            assert c.headers["User-Agent"] == "TestAgent/1.0"

    def test_redirect_is_returned_not_followed(self) -> None:
        with respx.mock:
            respx.get(_URL).mock(
                return_value=httpx.Response(302, headers={"Location": "/elsewhere"})
            )
            with create_client(Settings()) as c:
                result = fetch_page(c, _URL)

        assert result.status_code == 302
        assert result.location == "/elsewhere"
        assert result.html == ""


class TestFetchPage:
    def test_anonymous_fetch_has_no_authorization(self, client: httpx.Client) -> None:
        with respx.mock:
            route = respx.get(_URL).mock(return_value=httpx.Response(200, html="<p>hi</p>"))
            result = fetch_page(client, _URL, auth=None)

        assert result.is_success
        assert result.is_html
        assert result.html == "<p>hi</p>"
        assert "Authorization" not in route.calls.last.request.headers

    def test_bearer_token_attached(self, client: httpx.Client) -> None:
        auth = AuthSession(CountingCredential(), "api://site")
        with respx.mock:
            route = respx.get(_URL).mock(return_value=httpx.Response(200, html="ok"))
            fetch_page(client, _URL, auth=auth)

        assert _auth_header(route.calls.last.request) == "Bearer token-1"

    def test_401_refreshes_once_and_retries_with_new_token(self, client: httpx.Client) -> None:
        cred = CountingCredential()
        auth = AuthSession(cred, "api://site")
        auth.ensure_authenticated()
        seen: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(_auth_header(request))
            if _auth_header(request) == "Bearer token-1":
                return httpx.Response(401)
            return httpx.Response(200, html="<p>secret</p>")

        with respx.mock:
            respx.get(_URL).mock(side_effect=handler)
            result = fetch_page(client, _URL, auth=auth)

        assert result.status_code == 200
        assert cred.calls == 2
        assert seen == ["Bearer token-1", "Bearer token-2"]

    def test_second_rejection_is_returned_without_further_retry(self, client: httpx.Client) -> None:
        cred = CountingCredential()
        auth = AuthSession(cred, "api://site")
        with respx.mock:
            route = respx.get(_URL).mock(return_value=httpx.Response(403))
            result = fetch_page(client, _URL, auth=auth)

        assert result.status_code == 403
        assert route.call_count == 2
        assert cred.calls == 2

    def test_401_without_audience_is_not_retried(self, client: httpx.Client) -> None:
        cred = CountingCredential()
        auth = AuthSession(cred, "")
        with respx.mock:
            route = respx.get(_URL).mock(return_value=httpx.Response(401))
            result = fetch_page(client, _URL, auth=auth)

        assert result.status_code == 401
        assert route.call_count == 1
        assert cred.calls == 0

    def test_network_error_becomes_transient_fetch_error(self, client: httpx.Client) -> None:
        with respx.mock:
            respx.get(_URL).mock(side_effect=httpx.ConnectTimeout("too slow"))
            with pytest.raises(TransientFetchError):
                fetch_page(client, _URL)

    def test_content_type_recorded(self, client: httpx.Client) -> None:
        with respx.mock:
            respx.get(_URL).mock(
                return_value=httpx.Response(
                    200, content=b"%PDF-1.7", headers={"Content-Type": "application/pdf"}
                )
            )
            result = fetch_page(client, _URL)

        assert result.content_type == "application/pdf"
        assert not result.is_html


@pytest.mark.parametrize(
    ("content_type", "expected"),
    [
        ("text/html; charset=utf-8", True),
        ("application/xhtml+xml", True),
        ("TEXT/HTML", True),
        ("", True),
        ("text/css", False),
        ("text/plain", False),
        ("text/csv", False),
        ("application/json", False),
    ],
)
def test_only_html_content_types_are_parsed(content_type: str, expected: bool) -> None:
    result = FetchResult(url=_URL, status_code=200, content_type=content_type)
    assert result.is_html is expected
