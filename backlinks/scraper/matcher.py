"""Anchor extraction and backlink matching over a fetched page."""

from __future__ import annotations

from typing import Iterator
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from backlinks.scraper.models import Match
from backlinks.scraper.normalize import normalize_text, normalize_url

# Number of page links echoed to the log when nothing matched.
_SAMPLE_LINKS = 5


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _iter_anchors(html: str) -> Iterator[tuple[str, str]]:
    """Yield ``(href, text)`` for every ``<a>`` with a non-empty ``href``."""
    soup = BeautifulSoup(html, "html.parser")
    for anchor in soup.find_all("a"):
        href = (anchor.get("href") or "").strip()
        if not href:
            continue
        yield href, anchor.get_text().strip()


def resolve_href(href: str, base_url: str) -> str:
    """Turn *href* into an absolute URL using *base_url*'s scheme and host.

    Root-relative hrefs are appended to the origin as-is; hrefs that already
    start with ``http`` pass through; anything else is joined to the origin
    with a ``/``.
    """
    if href.startswith("http"):
        return href

    parts = urlsplit(base_url)
    if not parts.scheme or not parts.netloc:
        return href
    origin = f"{parts.scheme}://{parts.netloc}"

    if href.startswith("/"):
        return f"{origin}{href}"
    return f"{origin}/{href}"


def _urls_match(normalized_href: str, normalized_target: str) -> bool:
    return normalized_target in normalized_href or normalized_href in normalized_target


def _text_matches(link_text: str, expected_text: str) -> bool:
    return expected_text in link_text or link_text in expected_text


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def find_match(html: str, base_url: str, target_url: str, anchor_text: str = "") -> Match:
    """Return the first anchor in *html* that links to *target_url*.

    Args:
        html: Body of the source page.
        base_url: URL the page was fetched from; used to resolve relative hrefs.
        target_url: The URL the backlink is expected to point at.
        anchor_text: Expected link text.  Empty means any text is acceptable.

    Returns:
        A :class:`Match`.  URLs (and texts, when *anchor_text* is given) are
        compared after normalisation and accepted when either side contains
        the other.
    """
    normalized_target = normalize_url(target_url)
    normalized_anchor = normalize_text(anchor_text)

    sample: list[str] = []
    for href, text in _iter_anchors(html):
        normalized_href = normalize_url(resolve_href(href, base_url))

        if _urls_match(normalized_href, normalized_target) and (
            not anchor_text or _text_matches(normalize_text(text), normalized_anchor)
        ):
            details = f'Found link: "{text}" -> {href}'
            print(f"[MATCH] ✓ {details}")
            return Match(matched=True, details=details)

        if text and len(sample) < _SAMPLE_LINKS:
            sample.append(f'"{text}" -> {href}')

    print(
        f"[MATCH] ✗ No matching link found for {normalized_target} "
        f"with text {anchor_text!r}. Sample links: {sample}"
    )
    return Match(matched=False)
