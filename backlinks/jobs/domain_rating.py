"""Domain-rating enrichment.

Providers share a common interface: ``await lookup(url) -> DomainRating``.
A lookup must return (not raise) on failure, reporting the problem in
``domain_rating_error``; enrichment never affects an item's crawl status.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

import httpx

from backlinks.config import settings
from backlinks.jobs.models import DomainRating

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_WWW_RE = re.compile(r"^www\.", re.IGNORECASE)


def clean_domain(url: str) -> str:
    """Reduce *url* to its bare host, e.g. ``https://www.a.com/x`` → ``a.com``."""
    domain = _SCHEME_RE.sub("", url.strip())
    domain = _WWW_RE.sub("", domain)
    return re.split(r"[/?#]", domain, maxsplit=1)[0]


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class DomainRatingProvider(ABC):
    """Abstract base class for a domain-authority lookup."""

    @abstractmethod
    async def lookup(self, url: str) -> DomainRating:
        """Return the rating for *url*'s domain.  Must not raise."""


class NullDomainRating(DomainRatingProvider):
    """Provider used when enrichment is disabled."""

    async def lookup(self, url: str) -> DomainRating:
        return DomainRating(domain_rating_error="Domain rating disabled")


# ---------------------------------------------------------------------------
# Ahrefs
# ---------------------------------------------------------------------------

class AhrefsDomainRating(DomainRatingProvider):
    """Ahrefs Site Explorer ``domain-rating`` endpoint.

    Skipped (with an error message) if ``settings.ahrefs_api_key`` is empty.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.ahrefs_api_key
        self.base_url = (base_url or settings.ahrefs_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.domain_rating_timeout

    async def lookup(self, url: str) -> DomainRating:
        if not self.api_key:
            return DomainRating(domain_rating_error="Ahrefs API key not configured")

        domain = clean_domain(url)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(
                    f"{self.base_url}/site-explorer/domain-rating",
                    params={"target": domain, "token": self.api_key},
                    headers={
                        "Accept": "application/json",
                        "User-Agent": "BacklinkChecker/1.0",
                    },
                )
                resp.raise_for_status()
                data = resp.json()
        except Exception as exc:  # noqa: BLE001
            print(f"[DR] request failed for {domain!r}: {exc}")
            return DomainRating(domain_rating_error=str(exc) or type(exc).__name__)

        value = data.get("domain_rating") if isinstance(data, dict) else None
        # Some API versions nest the figure one level deeper.
        if isinstance(value, dict):
            value = value.get("domain_rating")
        if value is None:
            return DomainRating(domain_rating_error="No domain rating data available")

        try:
            rating = max(0, min(100, round(float(value))))
        except (TypeError, ValueError):
            return DomainRating(domain_rating_error=f"Unexpected domain rating {value!r}")

        print(f"[DR] ✓ {domain} → {rating}")
        return DomainRating(domain_rating=rating)
