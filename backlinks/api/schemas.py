"""Pydantic request schemas shared by the routers.

Field names follow the camelCase wire format (``urlFrom``, ``urlTo``,
``anchorText``); Python code uses the snake_case attributes.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from backlinks.jobs.models import BacklinkClaim


class ClaimIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    url_from: str = Field(alias="urlFrom")
    url_to: str = Field(alias="urlTo")
    anchor_text: Optional[str] = Field(default="", alias="anchorText")

    def to_claim(self) -> BacklinkClaim:
        return BacklinkClaim(
            url_from=self.url_from.strip(),
            url_to=self.url_to.strip(),
            anchor_text=self.anchor_text or "",
        )


class SubmitJobRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: Optional[str] = Field(default=None, alias="jobId")
    items: list[ClaimIn]


class RecrawlItemIn(BaseModel):
    """Item reference sent with a WebSocket ``recrawl`` message.

    Only ``id`` is needed to find the stored item.  The URLs and anchor text
    are optional and are only echoed back when the lookup fails.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    url_from: str = Field(default="", alias="urlFrom")
    url_to: str = Field(default="", alias="urlTo")
    anchor_text: Optional[str] = Field(default="", alias="anchorText")

    def to_claim(self) -> BacklinkClaim:
        return BacklinkClaim(
            url_from=self.url_from.strip(),
            url_to=self.url_to.strip(),
            anchor_text=self.anchor_text or "",
        )
