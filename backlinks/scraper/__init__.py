"""Scraper package — page fetch, normalisation and link matching."""

from backlinks.scraper.fetcher import (
    FetchError,
    FetchHTTPError,
    FetchNetworkError,
    FetchTimeoutError,
    PageFetcher,
)
from backlinks.scraper.matcher import find_match
from backlinks.scraper.models import Match, RawPage
from backlinks.scraper.normalize import normalize_text, normalize_url

__all__ = [
    "PageFetcher",
    "FetchError",
    "FetchTimeoutError",
    "FetchNetworkError",
    "FetchHTTPError",
    "find_match",
    "normalize_url",
    "normalize_text",
    "Match",
    "RawPage",
]
