"""Tests for URL resolution, canonicalisation, and same-host scoping."""

from __future__ import annotations

import pytest

from siteingest.errors import MalformedUrlError
from siteingest.scraper.urls import (
    filter_links,
    host_of,
    is_absolute,
    is_same_host,
    normalize,
    resolve,
)


class TestResolve:
    def test_relative_path_resolved_against_base(self) -> None:
        assert resolve("https://example.com/docs/", "/about") == "https://example.com/about"

    def test_relative_segment_resolved_against_directory(self) -> None:
        assert resolve("https://example.com/docs/", "intro") == "https://example.com/docs/intro"

    def test_absolute_candidate_returned_unchanged(self) -> None:
        assert resolve("https://example.com/", "https://other.com/x#y") == "https://other.com/x#y"

    def test_protocol_relative(self) -> None:
        assert resolve("https://example.com/a", "//cdn.example.com/b") == "https://cdn.example.com/b"

    def test_non_http_reference_is_malformed(self) -> None:
        with pytest.raises(MalformedUrlError):
            resolve("https://example.com/", "mailto:someone@example.com")

    def test_unparsable_candidate_raises(self) -> None:
        with pytest.raises(MalformedUrlError):
            resolve("https://example.com/", "http://[::1")


class TestNormalize:
    def test_strips_fragment(self) -> None:
        assert normalize("https://example.com/page#section") == "https://example.com/page"

    def test_strips_trailing_slash(self) -> None:
        assert normalize("https://example.com/docs/") == "https://example.com/docs"
        assert normalize("https://example.com/") == "https://example.com"

    def test_keeps_query(self) -> None:
        assert normalize("https://example.com/search/?q=1#top") == "https://example.com/search?q=1"

    def test_lowercases_scheme_and_host(self) -> None:
        assert normalize("HTTPS://Example.COM/Path") == "https://example.com/Path"

    def test_fragment_and_slash_variants_are_identical(self) -> None:
        assert normalize("https://example.com/a/#x") == normalize("https://example.com/a")

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com",
            "https://example.com/",
            "https://example.com/docs//",
            "https://example.com/a?b=c/#d",
            "http://EXAMPLE.com:8080/x/",
            "https://example.com/?",
        ],
    )
    def test_idempotent(self, url: str) -> None:
        once = normalize(url)
        assert normalize(once) == once

    def test_relative_url_is_malformed(self) -> None:
        with pytest.raises(MalformedUrlError):
            normalize("/just/a/path")


class TestHosts:
    def test_same_host_case_insensitive(self) -> None:
        assert is_same_host("https://EXAMPLE.com/x", "example.COM")

    def test_different_host(self) -> None:
        assert not is_same_host("https://other.com/x", "example.com")

    def test_subdomain_is_a_different_host(self) -> None:
        assert not is_same_host("https://www.example.com/", "example.com")

    def test_host_of_ignores_port(self) -> None:
        assert host_of("http://Example.com:8080/a") == "example.com"

    def test_is_absolute(self) -> None:
        assert is_absolute("https://example.com")
        assert not is_absolute("/about")


class TestFilterLinks:
    def test_keeps_same_host_and_drops_cross_host(self) -> None:
        links = filter_links(
            "https://example.com/docs/",
            ["/about", "https://other.com/x"],
            "example.com",
        )
        assert links == ["https://example.com/about"]

    def test_deduplicates_canonical_forms(self) -> None:
        links = filter_links(
            "https://example.com/",
            ["/a", "/a/", "/a#frag", "https://example.com/a"],
            "example.com",
        )
        assert links == ["https://example.com/a"]

    def test_skips_non_http_and_malformed(self) -> None:
        links = filter_links(
            "https://example.com/",
            ["javascript:void(0)", "mailto:x@example.com", "http://[::1", "", "/ok"],
            "example.com",
        )
        assert links == ["https://example.com/ok"]

    def test_preserves_document_order(self) -> None:
        links = filter_links("https://example.com/", ["/c", "/a", "/b"], "example.com")
        assert links == [
            "https://example.com/c",
            "https://example.com/a",
            "https://example.com/b",
        ]
