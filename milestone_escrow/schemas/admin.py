"""Admin, recovery and reconciliation schemas."""
from datetime import datetime
from typing import Any

from pydantic import Field

from milestone_escrow.models.reconciliation import MarkerStatus

from .common import CamelModel


class ForceReleaseIn(CamelModel):
    project_id: int
    milestone_num: int = Field(..., ge=1, le=4)
    tx_id: str = Field(..., min_length=1, max_length=100)


class ForceRefundIn(CamelModel):
    project_id: int
    tx_id: str = Field(..., min_length=1, max_length=100)


class DashboardStats(CamelModel):
    total_users: int
    total_projects: int
    projects_by_status: dict[str, int]
    open_disputes: int
    pending_markers: int
    released_stx: int
    released_sbtc: int


class MarkerRead(CamelModel):
    id: int
    intent: str
    entity: str
    entity_id: int
    project_id: int | None
    tx_id: str
    params_json: dict[str, Any]
    error: str
    status: MarkerStatus
    resolved_by: str | None
    resolved_at: datetime | None
    created_at: datetime


class OwnershipRead(CamelModel):
    owner: str | None
    proposed_owner: str | None
    transfer_pending: bool


class OwnershipProposeIn(CamelModel):
    new_owner: str = Field(..., min_length=1, max_length=200)
    tx_id: str = Field(..., min_length=1, max_length=100)


class OwnershipAcceptIn(CamelModel):
    tx_id: str = Field(..., min_length=1, max_length=100)
