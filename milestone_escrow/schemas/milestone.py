"""Milestone submission schemas."""
from datetime import datetime

from pydantic import Field

from milestone_escrow.models.submission import SubmissionStatus

from .common import CamelModel


class MilestoneSubmit(CamelModel):
    project_id: int
    milestone_num: int = Field(..., ge=1, le=4)
    deliverable_url: str = Field(..., min_length=1, max_length=500)
    description: str | None = None
    completion_tx_id: str | None = Field(default=None, max_length=100)


class MilestoneApprove(CamelModel):
    release_tx_id: str = Field(..., min_length=1, max_length=100)


class SubmissionRead(CamelModel):
    id: int
    project_id: int
    milestone_num: int
    freelancer_id: int
    deliverable_url: str
    description: str | None
    status: SubmissionStatus
    completion_tx_id: str | None
    release_tx_id: str | None
    submitted_at: datetime
    reviewed_at: datetime | None
