"""WebSocket progress channel.

Routes
------
WS /ws

One persistent connection per observer.  Client → server messages::

    {"event": "join",    "jobId": "..."}
    {"event": "leave",   "jobId": "..."}
    {"event": "recrawl", "jobId": "...", "item": {"id": "...", "urlFrom": "...",
                                                  "urlTo": "...", "anchorText": "..."}}

A recrawl only needs ``item.id``; the other item fields are optional and are
echoed back in the synthetic error item when the lookup fails.

Server → client messages::

    {"event": "joined",   "jobId": "..."}
    {"event": "progress", "jobId": "...", "progress": 50 | null, "item": {...}}
    {"event": "complete", "jobId": "..."}
    {"event": "error",    "detail": "..."}

Recrawl results are broadcast to every observer of the batch.  Lookup
failures (unknown batch or item) come back to the requester only, as a
``progress`` event carrying a synthetic ``error`` item.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from backlinks.api.schemas import RecrawlItemIn
from backlinks.jobs import Services
from backlinks.jobs.progress import QueueObserver, ReplyEvent

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _pump(websocket: WebSocket, observer: QueueObserver) -> None:
    """Forward every event queued for *observer* to the socket.

    This is the only task that writes to the socket; replies are queued on
    the observer like progress events.
    """
    while True:
        event = await observer.get()
        await websocket.send_json(event.to_dict())


def _reply(services: Services, observer: QueueObserver, **payload: Any) -> None:
    services.bus.send(observer, ReplyEvent(payload))


def _handle(message: dict[str, Any], services: Services, observer: QueueObserver) -> None:
    kind = message.get("event")
    job_id = message.get("jobId")

    if kind not in ("join", "leave", "recrawl"):
        _reply(services, observer, event="error", detail=f"Unknown event {kind!r}")
        return
    if not isinstance(job_id, str) or not job_id:
        _reply(services, observer, event="error", detail="jobId is required")
        return

    if kind == "join":
        services.bus.subscribe(job_id, observer)
        _reply(services, observer, event="joined", jobId=job_id)
    elif kind == "leave":
        services.bus.unsubscribe(observer, job_id)
    else:
        try:
            item = RecrawlItemIn.model_validate(message.get("item") or {})
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            )
            _reply(services, observer, event="error", detail=f"Invalid recrawl item: {problems}")
            return
        if not item.id:
            _reply(services, observer, event="error", detail="item.id is required")
            return
        services.recrawler.spawn(job_id, item.id, requester=observer, claim=item.to_claim())


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------

@router.websocket("/ws")
async def progress_channel(websocket: WebSocket) -> None:
    """Serve one observer until it disconnects."""
    services: Services = websocket.app.state.services
    await websocket.accept()
    observer = QueueObserver()
    pump = asyncio.create_task(_pump(websocket, observer))
    print(f"[WS] Client connected: {observer.id[:8]}")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                _reply(services, observer, event="error", detail="Malformed JSON")
                continue
            if not isinstance(message, dict):
                _reply(services, observer, event="error", detail="Expected an object")
                continue
            _handle(message, services, observer)
    except WebSocketDisconnect:
        pass
    finally:
        services.bus.unsubscribe(observer)
        pump.cancel()
        try:
            await pump
        except (asyncio.CancelledError, Exception):  # noqa: BLE001
            pass
        print(f"[WS] Client disconnected: {observer.id[:8]}")
