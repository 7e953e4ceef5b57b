"""Batch endpoints.

Routes
------
POST /api/jobs                   Body: {"jobId": "...", "items": [{...}, ...]}
GET  /api/jobs                   List batch summaries
GET  /api/jobs/{job_id}          Current state of one batch, items included
GET  /api/jobs/{job_id}/events   Live progress for one batch (SSE)

SSE event format
----------------
Each event is a JSON-encoded object on the ``data:`` line::

    data: {"event": "snapshot", "jobId": "...", "status": "...", "items": [...]}

    data: {"event": "progress", "jobId": "...", "progress": 50, "item": {...}}

    data: {"event": "complete", "jobId": "..."}

The snapshot gives late joiners the state they missed; there is no replay of
earlier progress events.  The stream closes after ``complete``.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any, AsyncIterator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from backlinks.api.schemas import SubmitJobRequest
from backlinks.jobs import Services
from backlinks.jobs.models import BatchStatus, ClaimValidationError
from backlinks.jobs.progress import CompleteEvent, QueueObserver

router = APIRouter()


# ---------------------------------------------------------------------------
# SSE helpers
# ---------------------------------------------------------------------------

def _sse(payload: dict[str, Any]) -> str:
    """Format a payload dict as a single SSE ``data:`` line."""
    return f"data: {json.dumps(payload)}\n\n"


async def _job_sse_generator(
    services: Services, job_id: str, poll_interval: float = 1.0
) -> AsyncIterator[str]:
    """Yield SSE-formatted strings until the batch completes.

    The ``complete`` event can be dropped when the observer's queue is full,
    so the batch status is re-checked every *poll_interval* seconds of
    silence and the stream is closed once it reports ``completed``.
    """
    observer = QueueObserver()
    # Subscribe before taking the snapshot so no event falls in between.
    services.bus.subscribe(job_id, observer)
    try:
        batch = services.store.get_batch(job_id)
        if batch is None:
            return
        yield _sse({"event": "snapshot", **batch.to_dict()})
        if batch.status is BatchStatus.COMPLETED:
            yield _sse(CompleteEvent(job_id=job_id).to_dict())
            return

        while True:
            try:
                event = await asyncio.wait_for(observer.get(), timeout=poll_interval)
            except asyncio.TimeoutError:
                if batch.status is BatchStatus.COMPLETED:
                    yield _sse(CompleteEvent(job_id=job_id).to_dict())
                    break
                continue
            yield _sse(event.to_dict())
            if isinstance(event, CompleteEvent):
                break
    finally:
        services.bus.unsubscribe(observer, job_id)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("", status_code=201)
async def submit_job(body: SubmitJobRequest, request: Request) -> dict[str, Any]:
    """Store a batch of claims and start processing it in the background."""
    services: Services = request.app.state.services
    job_id = body.job_id or str(uuid.uuid4())
    try:
        batch = services.scheduler.submit(
            job_id, [(item.id, item.to_claim()) for item in body.items]
        )
    except ClaimValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid job data: {exc}") from exc

    return {
        "success": True,
        "jobId": batch.job_id,
        "items": [item.to_dict() for item in batch.items],
    }


@router.get("")
def list_jobs(request: Request) -> list[dict[str, Any]]:
    """Summaries of every batch held in memory, oldest first."""
    services: Services = request.app.state.services
    return [batch.to_dict(include_items=False) for batch in services.store.list_batches()]


@router.get("/{job_id}")
def get_job(job_id: str, request: Request) -> dict[str, Any]:
    """Return the current state of *job_id*."""
    services: Services = request.app.state.services
    batch = services.store.get_batch(job_id)
    if batch is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return batch.to_dict()


@router.get("/{job_id}/events")
async def job_events(job_id: str, request: Request) -> StreamingResponse:
    """Stream progress for *job_id* as ``text/event-stream``."""
    services: Services = request.app.state.services
    if services.store.get_batch(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")

    return StreamingResponse(
        _job_sse_generator(services, job_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",   # disable nginx proxy buffering
        },
    )
