"""URL and anchor-text canonicalisation used to decide whether a link matches.

Both functions are total: empty or ``None`` input yields ``""`` and nothing
ever raises.
"""

from __future__ import annotations

import re

_SCHEME_RE = re.compile(r"^https?://")
_WWW_RE = re.compile(r"^www\.")
_TRAILING_SLASH_RE = re.compile(r"/$")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_url(url: str | None) -> str:
    """Return a comparison key for *url*.

    Lower-cases, drops a leading ``http://``/``https://`` and ``www.``, cuts
    the query string and fragment, and drops a trailing ``/``.  The steps are
    repeated until the value is stable, so ``normalize_url`` is idempotent
    even for inputs such as ``http://www.x.com//``.
    """
    if not url:
        return ""

    normalized = url.lower()
    while True:
        previous = normalized
        normalized = _SCHEME_RE.sub("", normalized)
        normalized = _WWW_RE.sub("", normalized)
        normalized = normalized.split("?", 1)[0].split("#", 1)[0]
        normalized = _TRAILING_SLASH_RE.sub("", normalized)
        if normalized == previous:
            return normalized


def normalize_text(text: str | None) -> str:
    """Lower-case *text*, collapse whitespace runs to one space and trim."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text.lower()).strip()
