"""On-demand single backlink check.

Routes
------
POST /api/check-single    Body: {"urlFrom": "...", "urlTo": "...", "anchorText": "..."}

Bypasses the job store and scheduler entirely and answers synchronously.
The fetch uses ``settings.single_check_timeout``, shorter than the batch
bound, since the caller is itself waiting on an upstream request deadline.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from backlinks.api.schemas import ClaimIn
from backlinks.config import settings
from backlinks.jobs.models import ClaimValidationError

router = APIRouter()


@router.post("")
async def check_single(body: ClaimIn, request: Request) -> dict[str, Any]:
    """Check one claim and return the outcome alongside the claim fields."""
    claim = body.to_claim()
    try:
        claim.validate()
    except ClaimValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    engine = request.app.state.services.engine
    outcome = await engine.check(claim, timeout=settings.single_check_timeout)

    return {
        "urlFrom": claim.url_from,
        "urlTo": claim.url_to,
        "anchorText": claim.anchor_text,
        "status": outcome.status.value,
        "found": outcome.found,
        "statusCode": outcome.status_code,
        "error": outcome.error,
        "matchDetails": outcome.match_details,
    }
