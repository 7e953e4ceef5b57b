"""Out-of-band re-check of a single item inside an existing batch.

A recrawl runs independently of the scheduler's position in the batch and
may overlap with it; both take the item's lock before touching it.  Results
are published to the whole batch topic with ``progress=None``.  Lookup
failures (unknown batch or item) are answered to the requester only, as a
synthetic ``error`` item, and never raise.
"""

from __future__ import annotations

import asyncio

from backlinks.jobs.domain_rating import AhrefsDomainRating, DomainRatingProvider
from backlinks.jobs.engine import CrawlEngine, classify_exception
from backlinks.jobs.models import BacklinkClaim, ItemStatus, JobItem
from backlinks.jobs.progress import ProgressBus, ProgressEvent, QueueObserver
from backlinks.jobs.scheduler import refresh_rating
from backlinks.jobs.store import JobStore


class RecrawlHandler:
    def __init__(
        self,
        store: JobStore,
        bus: ProgressBus,
        engine: CrawlEngine | None = None,
        rating_provider: DomainRatingProvider | None = None,
    ) -> None:
        self.store = store
        self.bus = bus
        self.engine = engine or CrawlEngine()
        self.rating_provider = rating_provider or AhrefsDomainRating()
        self._tasks: set[asyncio.Task] = set()

    def spawn(
        self,
        job_id: str,
        item_id: str,
        requester: QueueObserver | None = None,
        claim: BacklinkClaim | None = None,
    ) -> asyncio.Task:
        """Run :meth:`recrawl` as an independent task on the running loop."""
        task = asyncio.get_running_loop().create_task(
            self.recrawl(job_id, item_id, requester=requester, claim=claim)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def recrawl(
        self,
        job_id: str,
        item_id: str,
        requester: QueueObserver | None = None,
        claim: BacklinkClaim | None = None,
    ) -> None:
        """Re-check one item and publish its state before and after.

        Args:
            job_id: Batch containing the item.
            item_id: Item to re-check.
            requester: Observer that asked; receives lookup errors directly.
            claim: Fields the requester knows about the item, echoed back in
                a synthetic error item so it can still render a row.
        """
        print(f"[RECRAWL] Recrawl requested for item {item_id} in job {job_id}")

        batch = self.store.get_batch(job_id)
        if batch is None:
            self._reject(job_id, item_id, requester, claim, "batch not found")
            return

        item = batch.get_item(item_id)
        if item is None:
            self._reject(job_id, item_id, requester, claim, "item not found")
            return

        async with self.store.item_lock(job_id, item_id):
            try:
                item.mark_checking()
                self._publish(job_id, item)
                outcome = await self.engine.check(item.claim)
                item.apply(outcome)
                await refresh_rating(item, self.rating_provider)
            except Exception as exc:  # noqa: BLE001
                print(f"[RECRAWL] Error during recrawl of item {item_id}: {exc!r}")
                item.fail(classify_exception(exc), str(exc) or type(exc).__name__)

            self._publish(job_id, item)

        print(f"[RECRAWL] Recrawl completed for item {item_id}: {item.status.value}")

    def _publish(self, job_id: str, item: JobItem) -> None:
        self.bus.publish(job_id, ProgressEvent.for_item(job_id, None, item))

    def _reject(
        self,
        job_id: str,
        item_id: str,
        requester: QueueObserver | None,
        claim: BacklinkClaim | None,
        message: str,
    ) -> None:
        print(f"[RECRAWL] ✗ {message}: job {job_id}, item {item_id}")
        if requester is None:
            return
        synthetic = JobItem(
            id=item_id,
            claim=claim or BacklinkClaim(url_from="", url_to=""),
            status=ItemStatus.ERROR,
            error=message,
        )
        self.bus.send(requester, ProgressEvent.for_item(job_id, None, synthetic))

    async def join(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel recrawls still in flight (used on application shutdown)."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
