"""Dataclass models for batches, items and crawl outcomes.

These are plain Python objects held in memory by the job store.  ``to_dict``
produces the camelCase wire shape shared by the REST routes, the WebSocket
channel and the SSE stream.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable


class ItemStatus(str, Enum):
    PENDING = "pending"
    CHECKING = "checking"
    FOUND = "found"
    NOT_FOUND = "not-found"
    ERROR = "error"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset(
    {ItemStatus.FOUND, ItemStatus.NOT_FOUND, ItemStatus.ERROR, ItemStatus.TIMEOUT}
)


class BatchStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"


class ClaimValidationError(ValueError):
    """Raised when submitted claims are malformed; nothing is stored."""


# ---------------------------------------------------------------------------
# Claims and outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BacklinkClaim:
    """An assertion that ``url_from`` links to ``url_to``.

    An empty ``anchor_text`` means any link text is acceptable.
    """

    url_from: str
    url_to: str
    anchor_text: str = ""

    def validate(self) -> None:
        if not self.url_from or not self.url_from.strip():
            raise ClaimValidationError("urlFrom is required")
        if not self.url_to or not self.url_to.strip():
            raise ClaimValidationError("urlTo is required")


@dataclass
class Outcome:
    """Classified result of checking one claim."""

    status: ItemStatus
    found: bool
    status_code: int | None = None
    error: str | None = None
    match_details: str | None = None


@dataclass
class DomainRating:
    domain_rating: int | None = None
    domain_rating_error: str | None = None


# ---------------------------------------------------------------------------
# Items and batches
# ---------------------------------------------------------------------------

@dataclass
class JobItem:
    id: str
    claim: BacklinkClaim
    status: ItemStatus = ItemStatus.PENDING
    found: bool | None = None
    status_code: int | None = None
    error: str | None = None
    match_details: str | None = None
    domain_rating: int | None = None
    domain_rating_error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def mark_checking(self) -> None:
        """Enter ``checking`` and drop any previous crawl result."""
        self.status = ItemStatus.CHECKING
        self.found = None
        self.status_code = None
        self.error = None
        self.match_details = None

    def apply(self, outcome: Outcome) -> None:
        self.status = outcome.status
        self.status_code = outcome.status_code
        self.match_details = outcome.match_details
        if outcome.status in (ItemStatus.ERROR, ItemStatus.TIMEOUT):
            self.found = None
            self.error = outcome.error or outcome.status.value
        else:
            self.found = outcome.found
            self.error = None

    def fail(self, status: ItemStatus, message: str) -> None:
        """Record an unexpected failure as a terminal ``error``/``timeout``."""
        self.apply(Outcome(status=status, found=False, error=message))

    def apply_rating(self, rating: DomainRating) -> None:
        self.domain_rating = rating.domain_rating
        self.domain_rating_error = rating.domain_rating_error

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "urlFrom": self.claim.url_from,
            "urlTo": self.claim.url_to,
            "anchorText": self.claim.anchor_text,
            "status": self.status.value,
            "found": self.found,
            "statusCode": self.status_code,
            "error": self.error,
            "matchDetails": self.match_details,
            "domainRating": self.domain_rating,
            "domainRatingError": self.domain_rating_error,
        }


@dataclass
class Batch:
    job_id: str
    items: list[JobItem] = field(default_factory=list)
    status: BatchStatus = BatchStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def get_item(self, item_id: str) -> JobItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @property
    def completed_count(self) -> int:
        return sum(1 for item in self.items if item.is_terminal)

    def to_dict(self, include_items: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "jobId": self.job_id,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "total": len(self.items),
            "completed": self.completed_count,
        }
        if include_items:
            payload["items"] = [item.to_dict() for item in self.items]
        return payload


def build_items(claims: Iterable[tuple[str | None, BacklinkClaim]]) -> list[JobItem]:
    """Validate ``(item_id, claim)`` pairs and turn them into pending items.

    Missing ids are filled with a UUID4.

    Raises:
        ClaimValidationError: A claim is incomplete or an id is repeated.
    """
    items: list[JobItem] = []
    seen: set[str] = set()
    for item_id, claim in claims:
        claim.validate()
        item_id = item_id or str(uuid.uuid4())
        if item_id in seen:
            raise ClaimValidationError(f"Duplicate item id {item_id!r}")
        seen.add(item_id)
        items.append(JobItem(id=item_id, claim=claim))
    return items
