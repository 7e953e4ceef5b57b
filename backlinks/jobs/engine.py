"""Check one backlink claim: fetch the source page, then look for the link.

``CrawlEngine.check`` is the only place an :class:`Outcome` is decided.
Batch processing, the on-demand single check and recrawls all route through
it so they classify identically.
"""

from __future__ import annotations

from backlinks.jobs.models import BacklinkClaim, ItemStatus, Outcome
from backlinks.scraper.fetcher import FetchError, FetchTimeoutError, PageFetcher
from backlinks.scraper.matcher import find_match


def classify_exception(exc: BaseException) -> ItemStatus:
    """Map an exception raised while processing an item to a terminal status."""
    if isinstance(exc, FetchTimeoutError):
        return ItemStatus.TIMEOUT
    if isinstance(exc, FetchError):
        return ItemStatus.ERROR
    # asyncio.TimeoutError is an alias of TimeoutError on Python 3.11+.
    if isinstance(exc, TimeoutError) or "timeout" in str(exc).lower():
        return ItemStatus.TIMEOUT
    return ItemStatus.ERROR


class CrawlEngine:
    def __init__(self, fetcher: PageFetcher | None = None) -> None:
        self.fetcher = fetcher or PageFetcher()

    async def check(self, claim: BacklinkClaim, timeout: float | None = None) -> Outcome:
        """Check *claim* and return its classified :class:`Outcome`.

        Args:
            claim: The backlink to verify.
            timeout: Optional fetch bound overriding the fetcher default;
                used by on-demand checks whose caller is waiting.

        Returns:
            ``found``/``not-found`` with the fetch status code when the page
            was retrieved, otherwise ``timeout``/``error`` with the message
            and the best-known status code.  Fetch failures never raise.
        """
        print(
            f"[CHECK] {claim.url_from} → {claim.url_to} "
            f"(anchor {claim.anchor_text!r})"
        )
        try:
            page = await self.fetcher.fetch(claim.url_from, timeout=timeout)
        except FetchError as exc:
            return Outcome(
                status=classify_exception(exc),
                found=False,
                status_code=exc.status_code,
                error=str(exc),
            )

        match = find_match(page.html, claim.url_from, claim.url_to, claim.anchor_text)
        return Outcome(
            status=ItemStatus.FOUND if match.matched else ItemStatus.NOT_FOUND,
            found=match.matched,
            status_code=page.status_code,
            match_details=match.details,
        )
