"""Crawl/match job engine.

Public API::

    from backlinks.jobs import build_services
    services = build_services()
    services.scheduler.submit("job-1", [(None, BacklinkClaim(...))])
"""

from __future__ import annotations

from dataclasses import dataclass

from backlinks.jobs.domain_rating import (
    AhrefsDomainRating,
    DomainRatingProvider,
    NullDomainRating,
)
from backlinks.jobs.engine import CrawlEngine, classify_exception
from backlinks.jobs.models import (
    BacklinkClaim,
    Batch,
    BatchStatus,
    ClaimValidationError,
    ItemStatus,
    JobItem,
    Outcome,
)
from backlinks.jobs.progress import (
    CompleteEvent,
    ProgressBus,
    ProgressEvent,
    QueueObserver,
    ReplyEvent,
)
from backlinks.jobs.recrawl import RecrawlHandler
from backlinks.jobs.scheduler import JobScheduler
from backlinks.jobs.store import InMemoryJobStore, JobStore


@dataclass
class Services:
    """The wired-together engine components shared by the API and CLI."""

    store: JobStore
    bus: ProgressBus
    engine: CrawlEngine
    scheduler: JobScheduler
    recrawler: RecrawlHandler


def build_services(
    store: JobStore | None = None,
    engine: CrawlEngine | None = None,
    rating_provider: DomainRatingProvider | None = None,
    pacing_delay: float | None = None,
) -> Services:
    store = store or InMemoryJobStore()
    bus = ProgressBus()
    engine = engine or CrawlEngine()
    rating_provider = rating_provider or AhrefsDomainRating()
    return Services(
        store=store,
        bus=bus,
        engine=engine,
        scheduler=JobScheduler(store, bus, engine, rating_provider, pacing_delay),
        recrawler=RecrawlHandler(store, bus, engine, rating_provider),
    )


__all__ = [
    "Services",
    "build_services",
    "BacklinkClaim",
    "Batch",
    "BatchStatus",
    "ClaimValidationError",
    "ItemStatus",
    "JobItem",
    "Outcome",
    "CrawlEngine",
    "classify_exception",
    "JobStore",
    "InMemoryJobStore",
    "ProgressBus",
    "ProgressEvent",
    "CompleteEvent",
    "QueueObserver",
    "ReplyEvent",
    "JobScheduler",
    "RecrawlHandler",
    "DomainRatingProvider",
    "AhrefsDomainRating",
    "NullDomainRating",
]
