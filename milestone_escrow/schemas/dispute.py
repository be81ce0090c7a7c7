"""Dispute schemas."""
from datetime import datetime

from pydantic import Field

from milestone_escrow.models.dispute import DisputeStatus

from .common import CamelModel


class DisputeCreate(CamelModel):
    project_id: int
    milestone_num: int = Field(..., ge=1, le=4)
    reason: str = Field(..., min_length=1)
    evidence_url: str | None = Field(default=None, max_length=500)
    dispute_tx_id: str | None = Field(default=None, max_length=100)


class DisputeRead(CamelModel):
    id: int
    project_id: int
    milestone_num: int
    filed_by: int
    reason: str
    evidence_url: str | None
    status: DisputeStatus
    resolution: str | None
    resolved_by: str | None
    favor_freelancer: bool | None
    dispute_tx_id: str | None
    resolution_tx_id: str | None
    resolved_at: datetime | None
    created_at: datetime


class DisputeResolve(CamelModel):
    resolution: str = Field(..., min_length=1)
    resolution_tx_id: str = Field(..., min_length=1, max_length=100)
    favor_freelancer: bool


class DisputeReset(CamelModel):
    resolution: str = Field(..., min_length=1)
    # Free-form operator marker recorded in place of a transaction id.
    marker: str = Field(..., min_length=1, max_length=100)
