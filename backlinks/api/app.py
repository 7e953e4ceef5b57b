"""FastAPI application factory.

Lifespan
--------
On startup the app wires one set of engine components (job store, progress
bus, crawl engine, scheduler and recrawl handler) and shares it across all
requests via ``request.app.state.services``.  On shutdown any batch still
being processed is cancelled; job state is in memory only and is lost.

Routers
-------
    /api/jobs          — batch submission, state and SSE progress stream
    /api/check-single  — synchronous single-claim check
    /ws                — WebSocket progress channel (join / leave / recrawl)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backlinks.config import settings
from backlinks.jobs import build_services

from backlinks.api.routers import check as check_router
from backlinks.api.routers import jobs as jobs_router
from backlinks.api.routers import progress as progress_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the engine on startup and stop background work on shutdown."""
    app.state.services = build_services()
    try:
        yield
    finally:
        await app.state.services.scheduler.shutdown()
        await app.state.services.recrawler.shutdown()


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="Backlink Checker API",
        description=(
            "Verifies that source pages link to target URLs with the expected "
            "anchor text.  Batches are processed in the background and progress "
            "is pushed over WebSocket or Server-Sent Events."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(jobs_router.router, prefix="/api/jobs", tags=["jobs"])
    app.include_router(check_router.router, prefix="/api/check-single", tags=["check"])
    app.include_router(progress_router.router, tags=["progress"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn backlinks.api.app:app --reload
app = create_app()
