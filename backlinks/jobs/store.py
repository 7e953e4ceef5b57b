"""Job storage abstraction.

``JobStore`` is the single owner of every :class:`Batch` and :class:`JobItem`.
The scheduler and the recrawl handler both reach items through it and must
hold ``item_lock(job_id, item_id)`` across any read-modify-write of an item,
so concurrent writers to the same item serialise.

``InMemoryJobStore`` keeps everything in process memory; batches live until
the process exits.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

from backlinks.jobs.models import Batch, BatchStatus, ClaimValidationError, JobItem


class JobStore(ABC):
    """Abstract base class for batch storage."""

    @abstractmethod
    def create_batch(self, job_id: str, items: list[JobItem]) -> Batch:
        """Store a new ``pending`` batch.

        Raises:
            ClaimValidationError: *job_id* is empty or already present.
        """

    @abstractmethod
    def get_batch(self, job_id: str) -> Batch | None:
        """Return the batch for *job_id*, or ``None``."""

    @abstractmethod
    def list_batches(self) -> list[Batch]:
        """Return every batch in creation order."""

    @abstractmethod
    def item_lock(self, job_id: str, item_id: str) -> asyncio.Lock:
        """Return the mutual-exclusion token guarding one item."""

    def get_item(self, job_id: str, item_id: str) -> JobItem | None:
        batch = self.get_batch(job_id)
        if batch is None:
            return None
        return batch.get_item(item_id)

    def claim_pending(self) -> list[Batch]:
        """Move every ``pending`` batch to ``processing`` and return them."""
        claimed = [b for b in self.list_batches() if b.status is BatchStatus.PENDING]
        for batch in claimed:
            batch.status = BatchStatus.PROCESSING
        return claimed


class InMemoryJobStore(JobStore):
    def __init__(self) -> None:
        self._batches: dict[str, Batch] = {}
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    def create_batch(self, job_id: str, items: list[JobItem]) -> Batch:
        if not job_id:
            raise ClaimValidationError("jobId is required")
        if job_id in self._batches:
            raise ClaimValidationError(f"Job {job_id!r} already exists")
        batch = Batch(job_id=job_id, items=items)
        self._batches[job_id] = batch
        return batch

    def get_batch(self, job_id: str) -> Batch | None:
        return self._batches.get(job_id)

    def list_batches(self) -> list[Batch]:
        return list(self._batches.values())

    def item_lock(self, job_id: str, item_id: str) -> asyncio.Lock:
        key = (job_id, item_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock
