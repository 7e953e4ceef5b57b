"""Tests for the HTTP, SSE and WebSocket API.

All tests run against the FastAPI TestClient.  Once the lifespan has run,
``app.state.services`` is replaced with components wired to a scripted
engine, a null domain-rating provider and zero pacing, so no network calls
are made.
"""

from __future__ import annotations

import json
import time
from typing import Any, Generator

import pytest
from fastapi.testclient import TestClient

from backlinks.api.app import create_app
from backlinks.api.routers.jobs import _job_sse_generator
from backlinks.api.routers.progress import _handle
from backlinks.config import settings
from backlinks.jobs import build_services
from backlinks.jobs.domain_rating import NullDomainRating
from backlinks.jobs.models import BacklinkClaim, ItemStatus, Outcome
from backlinks.jobs.progress import QueueObserver


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _ScriptedEngine:
    """Found for every source except those listed in ``script``."""

    def __init__(self, script: dict[str, Outcome] | None = None) -> None:
        self.script = script or {}
        self.timeouts: list[float | None] = []

    async def check(self, claim: BacklinkClaim, timeout: float | None = None) -> Outcome:
        self.timeouts.append(timeout)
        return self.script.get(
            claim.url_from,
            Outcome(
                status=ItemStatus.FOUND,
                found=True,
                status_code=200,
                match_details=f'Found link: "x" -> {claim.url_to}',
            ),
        )


def _parse_sse(content: bytes) -> list[dict]:
    """Parse raw SSE response bytes into a list of event dicts."""
    events = []
    for line in content.decode().splitlines():
        line = line.strip()
        if line.startswith("data: "):
            events.append(json.loads(line[len("data: "):]))
    return events


def _job(job_id: str, *sources: str) -> dict[str, Any]:
    return {
        "jobId": job_id,
        "items": [
            {
                "id": f"item-{n}",
                "urlFrom": source,
                "urlTo": "https://target.com/",
                "anchorText": "Target",
            }
            for n, source in enumerate(sources, start=1)
        ],
    }


def _wait_completed(client: TestClient, job_id: str) -> dict:
    for _ in range(200):
        body = client.get(f"/api/jobs/{job_id}").json()
        if body["status"] == "completed":
            return body
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} never completed")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def engine() -> _ScriptedEngine:
    return _ScriptedEngine(
        {
            "https://missing.com/": Outcome(
                status=ItemStatus.NOT_FOUND, found=False, status_code=200
            )
        }
    )


@pytest.fixture()
def client(engine: _ScriptedEngine) -> Generator[TestClient, None, None]:
    """TestClient whose engine components are scripted and instantaneous."""
    app = create_app()
    with TestClient(app, raise_server_exceptions=True) as c:
        # Lifespan has run by this point; override its services.
        c.app.state.services = build_services(
            engine=engine,  # type: ignore[arg-type]
            rating_provider=NullDomainRating(),
            pacing_delay=0,
        )
        yield c


# ---------------------------------------------------------------------------
# /api/jobs
# ---------------------------------------------------------------------------

class TestSubmitJob:
    def test_submit_returns_pending_items(self, client: TestClient) -> None:
        resp = client.post("/api/jobs", json=_job("job-1", "https://a.com/"))
        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert body["jobId"] == "job-1"
        assert body["items"][0]["id"] == "item-1"
        assert body["items"][0]["status"] == "pending"

    def test_batch_processes_to_completion(self, client: TestClient) -> None:
        client.post("/api/jobs", json=_job("job-2", "https://a.com/", "https://missing.com/"))
        body = _wait_completed(client, "job-2")
        assert [i["status"] for i in body["items"]] == ["found", "not-found"]
        assert body["items"][0]["statusCode"] == 200
        assert body["items"][0]["domainRatingError"] == "Domain rating disabled"
        assert body["completed"] == body["total"] == 2

    def test_job_id_and_item_ids_generated(self, client: TestClient) -> None:
        resp = client.post(
            "/api/jobs",
            json={"items": [{"urlFrom": "https://a.com/", "urlTo": "https://t.com/"}]},
        )
        body = resp.json()
        assert body["jobId"]
        assert body["items"][0]["id"]
        assert body["items"][0]["anchorText"] == ""

    def test_blank_url_rejected_and_not_stored(self, client: TestClient) -> None:
        payload = {"jobId": "bad", "items": [{"urlFrom": " ", "urlTo": "https://t.com/"}]}
        resp = client.post("/api/jobs", json=payload)
        assert resp.status_code == 400
        assert "urlFrom" in resp.json()["detail"]
        assert client.get("/api/jobs/bad").status_code == 404

    def test_missing_field_is_422(self, client: TestClient) -> None:
        resp = client.post("/api/jobs", json={"items": [{"urlFrom": "https://a.com/"}]})
        assert resp.status_code == 422

    def test_duplicate_job_id_rejected(self, client: TestClient) -> None:
        client.post("/api/jobs", json=_job("dup", "https://a.com/"))
        resp = client.post("/api/jobs", json=_job("dup", "https://a.com/"))
        assert resp.status_code == 400


class TestGetJob:
    def test_unknown_job_404(self, client: TestClient) -> None:
        resp = client.get("/api/jobs/nope")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Job not found"

    def test_list_jobs(self, client: TestClient) -> None:
        client.post("/api/jobs", json=_job("l-1", "https://a.com/"))
        client.post("/api/jobs", json=_job("l-2", "https://a.com/"))
        ids = [b["jobId"] for b in client.get("/api/jobs").json()]
        assert ids == ["l-1", "l-2"]
        assert "items" not in client.get("/api/jobs").json()[0]


class TestJobEvents:
    def test_completed_job_streams_snapshot_then_complete(self, client: TestClient) -> None:
        client.post("/api/jobs", json=_job("sse", "https://a.com/"))
        _wait_completed(client, "sse")

        resp = client.get("/api/jobs/sse/events")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        events = _parse_sse(resp.content)
        assert [e["event"] for e in events] == ["snapshot", "complete"]
        assert events[0]["items"][0]["status"] == "found"

    def test_unknown_job_404(self, client: TestClient) -> None:
        assert client.get("/api/jobs/nope/events").status_code == 404

    async def test_stream_closes_when_complete_event_is_dropped(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        # One-slot queue: only the first "checking" event fits, "complete" is dropped.
        monkeypatch.setattr(settings, "observer_queue_size", 1)
        services = build_services(
            engine=_ScriptedEngine(),  # type: ignore[arg-type]
            rating_provider=NullDomainRating(),
            pacing_delay=0,
        )
        services.scheduler.create(
            "slow-reader", [("item-1", BacklinkClaim("https://a.com/", "https://t.com/"))]
        )
        stream = _job_sse_generator(services, "slow-reader", poll_interval=0.01)

        snapshot = _parse_sse((await stream.__anext__()).encode())[0]
        assert snapshot["event"] == "snapshot"
        await services.scheduler.drain()

        rest = [_parse_sse(chunk.encode())[0] async for chunk in stream]
        assert [(e["event"], e.get("progress")) for e in rest] == [
            ("progress", 0),
            ("complete", None),
        ]
        assert services.bus.subscribers("slow-reader") == set()


# ---------------------------------------------------------------------------
# /api/check-single
# ---------------------------------------------------------------------------

class TestCheckSingle:
    def test_returns_outcome_with_claim(
        self, client: TestClient, engine: _ScriptedEngine
    ) -> None:
        resp = client.post(
            "/api/check-single",
            json={"urlFrom": "https://a.com/", "urlTo": "https://t.com/", "anchorText": "T"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["urlFrom"] == "https://a.com/"
        assert body["anchorText"] == "T"
        assert body["found"] is True
        assert body["status"] == "found"
        assert body["statusCode"] == 200
        assert body["error"] is None
        assert engine.timeouts == [settings.single_check_timeout]

    def test_does_not_touch_store(self, client: TestClient) -> None:
        client.post("/api/check-single", json={"urlFrom": "https://a.com/", "urlTo": "t.com"})
        assert client.get("/api/jobs").json() == []

    def test_missing_fields_rejected(self, client: TestClient) -> None:
        resp = client.post("/api/check-single", json={"urlFrom": "", "urlTo": "t.com"})
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# /ws
# ---------------------------------------------------------------------------

def _receive_until(ws, predicate) -> list[dict]:
    messages = []
    while True:
        message = ws.receive_json()
        messages.append(message)
        if predicate(message):
            return messages


class TestProgressChannel:
    def test_join_receives_progress_then_complete(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "join", "jobId": "live"})
            assert ws.receive_json() == {"event": "joined", "jobId": "live"}

            client.post("/api/jobs", json=_job("live", "https://a.com/", "https://missing.com/"))
            messages = _receive_until(ws, lambda m: m["event"] == "complete")

        progress = [m for m in messages if m["event"] == "progress"]
        assert [(m["item"]["id"], m["item"]["status"], m["progress"]) for m in progress] == [
            ("item-1", "checking", 0),
            ("item-1", "found", 50),
            ("item-2", "checking", 50),
            ("item-2", "not-found", 100),
        ]
        assert messages[-1] == {"event": "complete", "jobId": "live"}

    def test_recrawl_is_broadcast(self, client: TestClient) -> None:
        client.post("/api/jobs", json=_job("rc", "https://missing.com/"))
        _wait_completed(client, "rc")

        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "join", "jobId": "rc"})
            ws.receive_json()
            ws.send_json(
                {
                    "event": "recrawl",
                    "jobId": "rc",
                    "item": {
                        "id": "item-1",
                        "urlFrom": "https://missing.com/",
                        "urlTo": "https://target.com/",
                        "anchorText": "Target",
                    },
                }
            )
            first = ws.receive_json()
            second = ws.receive_json()

        assert (first["progress"], first["item"]["status"]) == (None, "checking")
        assert (second["progress"], second["item"]["status"]) == (None, "not-found")

    def test_recrawl_unknown_batch_returns_synthetic_error(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_json(
                {
                    "event": "recrawl",
                    "jobId": "ghost",
                    "item": {"id": "i", "urlFrom": "https://a.com/", "urlTo": "https://t.com/"},
                }
            )
            message = ws.receive_json()

        assert message["event"] == "progress"
        assert message["progress"] is None
        assert message["item"]["status"] == "error"
        assert message["item"]["error"] == "batch not found"
        assert message["item"]["urlFrom"] == "https://a.com/"

    def test_malformed_messages_get_error(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_text("not json")
            assert ws.receive_json()["event"] == "error"
            ws.send_json({"event": "dance", "jobId": "x"})
            assert "Unknown event" in ws.receive_json()["detail"]
            ws.send_json({"event": "join"})
            assert ws.receive_json()["detail"] == "jobId is required"
            ws.send_json({"event": "recrawl", "jobId": "x", "item": {"urlFrom": "https://a.com/"}})
            assert "Invalid recrawl item" in ws.receive_json()["detail"]

    def test_recrawl_by_id_alone(self, client: TestClient) -> None:
        client.post("/api/jobs", json=_job("by-id", "https://missing.com/"))
        _wait_completed(client, "by-id")

        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "join", "jobId": "by-id"})
            ws.receive_json()
            ws.send_json({"event": "recrawl", "jobId": "by-id", "item": {"id": "item-1"}})
            first = ws.receive_json()
            second = ws.receive_json()

        assert (first["item"]["status"], second["item"]["status"]) == ("checking", "not-found")
        assert second["item"]["urlFrom"] == "https://missing.com/"

    def test_replies_are_queued_on_the_observer(self) -> None:
        services = build_services(rating_provider=NullDomainRating(), pacing_delay=0)
        observer = QueueObserver()

        _handle({"event": "join", "jobId": "q"}, services, observer)
        _handle({"event": "dance", "jobId": "q"}, services, observer)

        replies = [event.to_dict() for event in observer.drain()]
        assert replies[0] == {"event": "joined", "jobId": "q"}
        assert replies[1]["event"] == "error"
        assert observer in services.bus.subscribers("q")
