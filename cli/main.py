"""Backlink checker CLI — entry-point for local checks and the API server.

Usage:
    python cli/main.py --help

Commands:
    check   → verify one backlink claim and print the outcome
    run     → process a JSON file of claims as one batch, printing progress
    serve   → start the HTTP / WebSocket API with uvicorn
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from backlinks.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import json
import uuid
from typing import Optional

import typer
from pydantic import ValidationError

from backlinks.api.schemas import ClaimIn
from backlinks.config import settings
from backlinks.jobs import (
    BacklinkClaim,
    Batch,
    ClaimValidationError,
    CompleteEvent,
    CrawlEngine,
    ProgressEvent,
    QueueObserver,
    build_services,
)

app = typer.Typer(
    name="backlinks",
    help="Backlink checker CLI.",
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _format_item(item: dict) -> str:
    line = f"{item['status']:<9}  {item['urlFrom']} → {item['urlTo']}"
    if item.get("statusCode") is not None:
        line += f"  (HTTP {item['statusCode']})"
    if item.get("error"):
        line += f"  error={item['error']!r}"
    if item.get("matchDetails"):
        line += f"  {item['matchDetails']}"
    return line


def _load_claims(path: Path) -> list[tuple[Optional[str], BacklinkClaim]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError("expected a JSON array of claims")
    parsed = [ClaimIn.model_validate(entry) for entry in data]
    return [(claim.id, claim.to_claim()) for claim in parsed]


async def _run_batch(
    job_id: str,
    claims: list[tuple[Optional[str], BacklinkClaim]],
    pacing: Optional[float],
) -> Batch:
    services = build_services(pacing_delay=pacing)
    observer = QueueObserver(maxsize=0)
    services.bus.subscribe(job_id, observer)
    batch = services.scheduler.create(job_id, claims)

    drain = asyncio.create_task(services.scheduler.drain())
    while True:
        event = await observer.get()
        if isinstance(event, CompleteEvent):
            break
        if isinstance(event, ProgressEvent):
            typer.echo(f"[run] {event.progress:>3}%  {_format_item(event.item)}")
    await drain
    return batch


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command("check")
def check(
    url_from: str = typer.Option(..., "--url-from", help="Page expected to contain the link."),
    url_to: str = typer.Option(..., "--url-to", help="URL the link should point at."),
    anchor_text: str = typer.Option("", "--anchor-text", help="Expected link text (optional)."),
    timeout: Optional[float] = typer.Option(
        None, help="Fetch timeout in seconds (default: SINGLE_CHECK_TIMEOUT)."
    ),
) -> None:
    """Check a single backlink claim.  Exits with 1 when the link is not found."""
    claim = BacklinkClaim(url_from=url_from, url_to=url_to, anchor_text=anchor_text)
    try:
        claim.validate()
    except ClaimValidationError as exc:
        typer.echo(f"[check] {exc}")
        raise typer.Exit(2)

    typer.echo(f"[check] Fetching {url_from!r} …")
    outcome = asyncio.run(
        CrawlEngine().check(claim, timeout=timeout or settings.single_check_timeout)
    )

    typer.echo(f"[check] Status : {outcome.status.value}")
    if outcome.status_code is not None:
        typer.echo(f"[check] HTTP   : {outcome.status_code}")
    if outcome.error:
        typer.echo(f"[check] Error  : {outcome.error}")
    if outcome.match_details:
        typer.echo(f"[check] Match  : {outcome.match_details}")

    if not outcome.found:
        raise typer.Exit(1)


@app.command("run")
def run(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON array of claims."),
    job_id: Optional[str] = typer.Option(None, "--job-id", help="Batch identifier."),
    pacing: Optional[float] = typer.Option(
        None, help="Delay between items in seconds (default: PACING_DELAY)."
    ),
) -> None:
    """Process a file of claims as one batch and print progress as it happens."""
    try:
        claims = _load_claims(path)
    except (ValueError, ValidationError) as exc:
        typer.echo(f"[run] Could not read {str(path)!r}: {exc}")
        raise typer.Exit(2)

    job_id = job_id or str(uuid.uuid4())
    typer.echo(f"[run] Job {job_id}: {len(claims)} claim(s)")
    try:
        batch = asyncio.run(_run_batch(job_id, claims, pacing))
    except ClaimValidationError as exc:
        typer.echo(f"[run] Invalid job data: {exc}")
        raise typer.Exit(2)

    found = sum(1 for item in batch.items if item.found)
    typer.echo(f"[run] Done: {found}/{len(batch.items)} backlink(s) found.")


@app.command("serve")
def serve(
    host: str = typer.Option(settings.host, help="Interface to bind."),
    port: int = typer.Option(settings.port, help="Port to listen on."),
    reload: bool = typer.Option(False, help="Reload on code changes."),
) -> None:
    """Run the HTTP / WebSocket API."""
    import uvicorn

    typer.echo(f"[serve] Backlink checker listening on http://{host}:{port}")
    uvicorn.run("backlinks.api.app:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
