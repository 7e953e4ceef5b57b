"""Batch scheduler.

State machines
--------------
Batch:  pending → processing → completed
Item:   pending → checking → found | not-found | error | timeout

Batches run concurrently with each other as independent asyncio tasks.
Inside one batch items are processed strictly one at a time, with a pacing
delay between items to keep the request rate against third-party sites low.

Recrawls always win: when the scheduler reaches an item a recrawl has
already settled, it counts the item as done and republishes its state
without fetching it again.
"""

from __future__ import annotations

import asyncio
from typing import Iterable

from backlinks.config import settings
from backlinks.jobs.domain_rating import AhrefsDomainRating, DomainRatingProvider
from backlinks.jobs.engine import CrawlEngine, classify_exception
from backlinks.jobs.models import (
    BacklinkClaim,
    Batch,
    BatchStatus,
    JobItem,
    build_items,
)
from backlinks.jobs.progress import CompleteEvent, ProgressBus, ProgressEvent, percent
from backlinks.jobs.store import JobStore


async def refresh_rating(item: JobItem, provider: DomainRatingProvider) -> None:
    """Best-effort domain-rating lookup for *item*; never touches crawl status."""
    try:
        rating = await provider.lookup(item.claim.url_from)
    except Exception as exc:  # noqa: BLE001
        item.domain_rating = None
        item.domain_rating_error = str(exc) or type(exc).__name__
        return
    item.apply_rating(rating)


class JobScheduler:
    def __init__(
        self,
        store: JobStore,
        bus: ProgressBus,
        engine: CrawlEngine | None = None,
        rating_provider: DomainRatingProvider | None = None,
        pacing_delay: float | None = None,
    ) -> None:
        self.store = store
        self.bus = bus
        self.engine = engine or CrawlEngine()
        self.rating_provider = rating_provider or AhrefsDomainRating()
        self.pacing_delay = (
            pacing_delay if pacing_delay is not None else settings.pacing_delay
        )
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def create(
        self, job_id: str, claims: Iterable[tuple[str | None, BacklinkClaim]]
    ) -> Batch:
        """Validate *claims* and store them as a new ``pending`` batch.

        Raises:
            ClaimValidationError: Nothing is stored when any claim is invalid.
        """
        items = build_items(claims)
        batch = self.store.create_batch(job_id, items)
        print(f"[SCHEDULER] Received job {job_id} with {len(items)} item(s)")
        return batch

    def submit(
        self, job_id: str, claims: Iterable[tuple[str | None, BacklinkClaim]]
    ) -> Batch:
        """Store a batch and start draining in the background.

        Must be called from a running event loop.  Returns immediately.
        """
        batch = self.create(job_id, claims)
        self._spawn(self.drain())
        return batch

    def _spawn(self, coro) -> asyncio.Task:  # type: ignore[no-untyped-def]
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Claim every pending batch and process them concurrently."""
        batches = self.store.claim_pending()
        if batches:
            await asyncio.gather(*(self._run_batch(b) for b in batches))

    async def _run_batch(self, batch: Batch) -> None:
        print(f"[SCHEDULER] Processing job {batch.job_id} with {len(batch.items)} item(s)")
        batch.status = BatchStatus.PROCESSING
        total = len(batch.items)
        completed = 0

        for index, item in enumerate(batch.items):
            async with self.store.item_lock(batch.job_id, item.id):
                if item.is_terminal:
                    completed += 1
                    self._progress(batch, completed, total, item)
                    continue

                try:
                    item.mark_checking()
                    self._progress(batch, completed, total, item)
                    outcome = await self.engine.check(item.claim)
                    item.apply(outcome)
                    await refresh_rating(item, self.rating_provider)
                except Exception as exc:  # noqa: BLE001
                    print(f"[SCHEDULER] Error checking item {item.id}: {exc!r}")
                    item.fail(classify_exception(exc), str(exc) or type(exc).__name__)

                completed += 1
                self._progress(batch, completed, total, item)

            if index < total - 1:
                await asyncio.sleep(self.pacing_delay)

        batch.status = BatchStatus.COMPLETED
        self.bus.publish(batch.job_id, CompleteEvent(job_id=batch.job_id))
        print(f"[SCHEDULER] Job {batch.job_id} completed")

    def _progress(self, batch: Batch, completed: int, total: int, item: JobItem) -> None:
        self.bus.publish(
            batch.job_id,
            ProgressEvent.for_item(batch.job_id, percent(completed, total), item),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def join(self) -> None:
        """Wait until every background drain has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding batch work (used on application shutdown)."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
