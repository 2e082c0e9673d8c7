"""Scraper package: URL scoping, authenticated fetch, extraction and crawl."""

from siteingest.scraper.auth import AuthSession, credential_from_settings
from siteingest.scraper.crawler import Crawler
from siteingest.scraper.extractor import extract_chunks, extract_links
from siteingest.scraper.fetcher import create_client, fetch_page
from siteingest.scraper.models import CrawlStats, CrawlTarget, ExtractedChunk

__all__ = [
    "AuthSession",
    "Crawler",
    "CrawlStats",
    "CrawlTarget",
    "ExtractedChunk",
    "create_client",
    "credential_from_settings",
    "extract_chunks",
    "extract_links",
    "fetch_page",
]
