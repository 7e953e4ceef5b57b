"""Per-batch publish/subscribe channel for progress events.

Delivery semantics
------------------
* At-most-once, fire-and-forget: ``publish`` never waits on an observer.
* No replay: an observer that subscribes after an event was published never
  sees it; late joiners read the batch's current state separately.
* Each observer owns a bounded queue.  When it is full the event is dropped
  for that observer only.

Event shapes (``to_dict``)::

    {"event": "progress", "jobId": "...", "progress": 50, "item": {...}}
    {"event": "complete", "jobId": "..."}

``progress`` is ``None`` for out-of-band single-item updates (recrawls); it
is not part of the ordered batch percentage sequence.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Union

from backlinks.config import settings
from backlinks.jobs.models import JobItem


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass
class ProgressEvent:
    job_id: str
    progress: int | None
    item: dict[str, Any]

    @classmethod
    def for_item(cls, job_id: str, progress: int | None, item: JobItem) -> "ProgressEvent":
        """Snapshot *item* so later mutation does not alter queued events."""
        return cls(job_id=job_id, progress=progress, item=item.to_dict())

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": "progress",
            "jobId": self.job_id,
            "progress": self.progress,
            "item": self.item,
        }


@dataclass
class CompleteEvent:
    job_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"event": "complete", "jobId": self.job_id}


@dataclass
class ReplyEvent:
    """A control message addressed to one observer (``joined``, ``error``)."""

    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return dict(self.payload)


Event = Union[ProgressEvent, CompleteEvent, ReplyEvent]


def percent(completed: int, total: int) -> int:
    """``completed / total`` as an integer percent, rounding halves up."""
    if total <= 0:
        return 100
    return (completed * 200 + total) // (2 * total)


# ---------------------------------------------------------------------------
# Observers
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class QueueObserver:
    """An observer backed by a bounded :class:`asyncio.Queue`.

    Transports (WebSocket, SSE) drain ``get()`` and forward each event.
    """

    maxsize: int = field(default_factory=lambda: settings.observer_queue_size)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        self.queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self.maxsize)

    def deliver(self, event: Event) -> bool:
        """Enqueue *event*; returns ``False`` when it had to be dropped."""
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    async def get(self) -> Event:
        return await self.queue.get()

    def drain(self) -> list[Event]:
        """Return every event queued so far without waiting."""
        events: list[Event] = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------

class ProgressBus:
    """Topic-per-batch pub/sub.  Topics are keyed by ``job_id``."""

    def __init__(self) -> None:
        self._topics: dict[str, set[QueueObserver]] = {}

    def subscribe(self, job_id: str, observer: QueueObserver) -> None:
        self._topics.setdefault(job_id, set()).add(observer)
        print(f"[BUS] Observer {observer.id[:8]} joined job {job_id}")

    def unsubscribe(self, observer: QueueObserver, job_id: str | None = None) -> None:
        """Remove *observer* from *job_id*, or from every topic when ``None``."""
        topics = [job_id] if job_id is not None else list(self._topics)
        for topic in topics:
            members = self._topics.get(topic)
            if not members:
                continue
            members.discard(observer)
            if not members:
                del self._topics[topic]

    def subscribers(self, job_id: str) -> set[QueueObserver]:
        return set(self._topics.get(job_id, ()))

    def publish(self, job_id: str, event: Event) -> int:
        """Deliver *event* to every current subscriber of *job_id*.

        Returns:
            The number of observers that accepted the event.
        """
        delivered = 0
        for observer in self.subscribers(job_id):
            if self.send(observer, event):
                delivered += 1
        return delivered

    def send(self, observer: QueueObserver, event: Event) -> bool:
        """Deliver *event* to a single observer, bypassing topics."""
        try:
            accepted = observer.deliver(event)
        except Exception as exc:  # noqa: BLE001
            print(f"[BUS] Observer {observer.id[:8]} failed, dropping it: {exc}")
            self.unsubscribe(observer)
            return False
        if not accepted:
            print(f"[BUS] Observer {observer.id[:8]} queue full, event dropped.")
        return accepted
