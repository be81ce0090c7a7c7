"""Proposal schemas."""
from datetime import datetime

from pydantic import Field

from milestone_escrow.models.proposal import ProposalStatus

from .common import CamelModel


class ProposalCreate(CamelModel):
    project_id: int
    cover_letter: str = Field(..., min_length=1, max_length=5000)


class ProposalRead(CamelModel):
    id: int
    project_id: int
    freelancer_id: int
    cover_letter: str
    status: ProposalStatus
    created_at: datetime
    updated_at: datetime
