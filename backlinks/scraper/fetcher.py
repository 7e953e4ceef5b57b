"""Async HTTP fetcher for source pages.

Transport outcomes are translated into a small tagged hierarchy so callers
classify failures by type rather than by inspecting messages:

    FetchError
    ├── FetchTimeoutError   kind="timeout"
    ├── FetchNetworkError   kind="network"
    └── FetchHTTPError      kind="http"     (status >= 400)
"""

from __future__ import annotations

import asyncio

import httpx

from backlinks.config import settings
from backlinks.scraper.models import RawPage

# Many sites block non-browser agents, so present as desktop Chrome.
_BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class FetchError(Exception):
    """Base class for every failure to retrieve a source page."""

    kind = "network"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FetchTimeoutError(FetchError):
    kind = "timeout"

    def __init__(self, message: str = "Request timeout") -> None:
        super().__init__(message)


class FetchNetworkError(FetchError):
    kind = "network"


class FetchHTTPError(FetchError):
    kind = "http"

    def __init__(self, status_code: int) -> None:
        super().__init__(
            f"Request failed with status code {status_code}", status_code
        )


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------

class PageFetcher:
    """Retrieve page HTML with a bounded timeout and redirect limit.

    Any final status below 400 counts as success, including a 3xx that has
    no further redirect target.
    """

    def __init__(
        self,
        timeout: float | None = None,
        max_redirects: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.max_redirects = (
            max_redirects if max_redirects is not None else settings.max_redirects
        )
        self.headers = headers or dict(_BROWSER_HEADERS)

    async def fetch(self, url: str, timeout: float | None = None) -> RawPage:
        """Fetch *url* and return a :class:`RawPage`.

        The timeout is an overall deadline covering connect, redirects and
        the full body read, not just a per-operation bound.

        Args:
            url: Absolute URL of the source page.
            timeout: Overrides the fetcher's default deadline.

        Raises:
            FetchTimeoutError: The request exceeded the timeout.
            FetchHTTPError: The server answered with a status of 400 or more.
            FetchNetworkError: Any other transport failure, including too
                many redirects and malformed URLs.
        """
        deadline = timeout if timeout is not None else self.timeout
        try:
            response, html = await asyncio.wait_for(
                self._get(url, deadline), timeout=deadline
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            print(f"[FETCH] ✗ Timeout fetching {url}: {exc!r:.120}")
            raise FetchTimeoutError() from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            message = str(exc) or type(exc).__name__
            print(f"[FETCH] ✗ Error fetching {url}: {message}")
            raise FetchNetworkError(message) from exc

        if response.status_code >= 400:
            print(f"[FETCH] ✗ HTTP {response.status_code} for {url}")
            raise FetchHTTPError(response.status_code)

        return RawPage(url=url, html=html, status_code=response.status_code)

    async def _get(self, url: str, timeout: float) -> tuple[httpx.Response, str]:
        async with httpx.AsyncClient(
            headers=self.headers,
            timeout=timeout,
            follow_redirects=True,
            max_redirects=self.max_redirects,
        ) as client:
            response = await client.get(url)
            return response, response.text
