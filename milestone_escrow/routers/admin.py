"""Admin endpoints: arbitration, recovery, reconciliation and contract ownership."""
from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from milestone_escrow.config import get_settings
from milestone_escrow.db import get_db
from milestone_escrow.models.api_key import ApiScope
from milestone_escrow.models.dispute import Dispute, DisputeStatus
from milestone_escrow.models.project import Project
from milestone_escrow.models.reconciliation import MarkerStatus, ReconciliationMarker
from milestone_escrow.routers.deps import CoordinatorFactory, get_coordinator_factory, get_ledger_reader
from milestone_escrow.schemas.admin import (
    DashboardStats,
    ForceRefundIn,
    ForceReleaseIn,
    MarkerRead,
    OwnershipAcceptIn,
    OwnershipProposeIn,
    OwnershipRead,
)
from milestone_escrow.schemas.dispute import DisputeRead, DisputeReset, DisputeResolve
from milestone_escrow.schemas.project import ProjectRead
from milestone_escrow.security import require_scope
from milestone_escrow.services import admin_stats
from milestone_escrow.services import disputes as dispute_service
from milestone_escrow.services import reconciliation
from milestone_escrow.services.ledger import LedgerReader
from milestone_escrow.services.ownership import fetch_ownership_state
from milestone_escrow.services.recovery import abandoned_projects
from milestone_escrow.utils.time import utcnow

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_scope({ApiScope.admin}))],
)


@router.get("/dashboard", response_model=DashboardStats)
def dashboard(db: Session = Depends(get_db)) -> dict[str, object]:
    return admin_stats.dashboard(db)


# --- Disputes ------------------------------------------------------------


@router.get("/disputes", response_model=list[DisputeRead])
def list_disputes(
    status_filter: DisputeStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> list[Dispute]:
    return dispute_service.list_all(db, status=status_filter)


@router.patch("/disputes/{dispute_id}/resolve", response_model=DisputeRead)
async def resolve_dispute(
    dispute_id: int,
    payload: DisputeResolve,
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> Dispute:
    return await coordinator(payload.resolution_tx_id).resolve_dispute(
        dispute_id,
        payload.resolution,
        payload.favor_freelancer,
        resolution_tx_id=payload.resolution_tx_id,
    )


@router.patch("/disputes/{dispute_id}/reset", response_model=DisputeRead)
async def reset_dispute(
    dispute_id: int,
    payload: DisputeReset,
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> Dispute:
    return await coordinator().reset_dispute(dispute_id, payload.resolution, payload.marker)


# --- Recovery ------------------------------------------------------------


@router.patch("/recovery/force-release", response_model=ProjectRead)
async def force_release(
    payload: ForceReleaseIn,
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> Project:
    return await coordinator(payload.tx_id).force_release(
        payload.project_id, payload.milestone_num, tx_id=payload.tx_id
    )


@router.patch("/recovery/force-refund", response_model=ProjectRead)
async def force_refund(
    payload: ForceRefundIn,
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> Project:
    return await coordinator(payload.tx_id).force_refund(payload.project_id, tx_id=payload.tx_id)


@router.get("/recovery/abandoned", response_model=list[ProjectRead])
def list_abandoned(
    days: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
) -> list[Project]:
    cutoff = utcnow() - timedelta(days=days or get_settings().ABANDONED_PROJECT_DAYS)
    return abandoned_projects(db, older_than=cutoff)


# --- Reconciliation ------------------------------------------------------


@router.get("/reconciliation", response_model=list[MarkerRead])
def list_markers(
    status_filter: MarkerStatus | None = Query(default=MarkerStatus.PENDING, alias="status"),
    db: Session = Depends(get_db),
) -> list[ReconciliationMarker]:
    return reconciliation.list_markers(db, status=status_filter)


@router.post("/reconciliation/{marker_id}/replay", response_model=MarkerRead)
async def replay_marker(
    marker_id: int,
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> ReconciliationMarker:
    return await coordinator().replay_marker(marker_id)


@router.post("/reconciliation/{marker_id}/dismiss", response_model=MarkerRead)
async def dismiss_marker(
    marker_id: int,
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> ReconciliationMarker:
    return await coordinator().dismiss_marker(marker_id)


# --- Contract ownership --------------------------------------------------


@router.get("/ownership", response_model=OwnershipRead)
async def ownership_state(reader: LedgerReader = Depends(get_ledger_reader)) -> OwnershipRead:
    state = await fetch_ownership_state(reader)
    return OwnershipRead(
        owner=state.owner,
        proposed_owner=state.proposed_owner,
        transfer_pending=state.transfer_pending,
    )


@router.patch("/ownership/propose")
async def propose_ownership(
    payload: OwnershipProposeIn,
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> dict[str, str]:
    new_owner = await coordinator(payload.tx_id).propose_ownership(payload.new_owner, tx_id=payload.tx_id)
    return {"newOwner": new_owner, "txId": payload.tx_id}


@router.patch("/ownership/accept")
async def accept_ownership(
    payload: OwnershipAcceptIn,
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> dict[str, str]:
    tx_id = await coordinator(payload.tx_id).accept_ownership(tx_id=payload.tx_id)
    return {"txId": tx_id}
