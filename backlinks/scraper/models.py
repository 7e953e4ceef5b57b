"""Data models for the fetch-and-match pipeline."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RawPage:
    """The raw HTTP response for a single URL fetch."""

    url: str
    html: str
    status_code: int


@dataclass
class Match:
    """Result of scanning a page for a matching anchor.

    ``details`` describes the first matching anchor (quoted text and raw
    href) and is ``None`` when nothing matched.
    """

    matched: bool
    details: str | None = None
