"""Dispute filing endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from milestone_escrow.db import get_db
from milestone_escrow.models.api_key import ApiScope
from milestone_escrow.models.dispute import Dispute
from milestone_escrow.models.user import User
from milestone_escrow.routers.deps import CoordinatorFactory, get_coordinator_factory
from milestone_escrow.schemas.dispute import DisputeCreate, DisputeRead
from milestone_escrow.security import require_scope, require_user
from milestone_escrow.services import disputes as dispute_service
from milestone_escrow.services import projects as project_service

router = APIRouter(prefix="/disputes", tags=["disputes"])


@router.post("", response_model=DisputeRead, status_code=status.HTTP_201_CREATED)
async def file_dispute(
    payload: DisputeCreate,
    user: User = Depends(require_user),
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> Dispute:
    # Without a signed transaction the dispute is recorded off-chain only.
    signed = payload.dispute_tx_id is not None
    return await coordinator(payload.dispute_tx_id).file_dispute(
        payload.project_id,
        payload.milestone_num,
        payload.reason,
        payload.evidence_url,
        sign_on_chain=signed,
        dispute_tx_id=payload.dispute_tx_id,
    )


@router.get(
    "/project/{project_id}",
    response_model=list[DisputeRead],
    dependencies=[Depends(require_scope({ApiScope.user}))],
)
def list_project_disputes(project_id: int, db: Session = Depends(get_db)) -> list[Dispute]:
    project_service.get_project(db, project_id)
    return dispute_service.list_for_project(db, project_id)
