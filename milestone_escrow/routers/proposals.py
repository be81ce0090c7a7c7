"""Proposal endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from milestone_escrow.db import get_db
from milestone_escrow.models.api_key import ApiScope
from milestone_escrow.models.proposal import Proposal
from milestone_escrow.models.user import User
from milestone_escrow.routers.deps import CoordinatorFactory, get_coordinator_factory
from milestone_escrow.schemas.proposal import ProposalCreate, ProposalRead
from milestone_escrow.security import require_scope, require_user
from milestone_escrow.services import projects as project_service
from milestone_escrow.services import proposals as proposal_service

router = APIRouter(prefix="/proposals", tags=["proposals"])


@router.post("", response_model=ProposalRead, status_code=status.HTTP_201_CREATED)
async def submit_proposal(
    payload: ProposalCreate,
    user: User = Depends(require_user),
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> Proposal:
    return await coordinator().submit_proposal(payload.project_id, payload.cover_letter)


@router.get(
    "/project/{project_id}",
    response_model=list[ProposalRead],
    dependencies=[Depends(require_scope({ApiScope.user}))],
)
def list_project_proposals(project_id: int, db: Session = Depends(get_db)) -> list[Proposal]:
    project_service.get_project(db, project_id)
    return proposal_service.list_for_project(db, project_id)


@router.patch("/{proposal_id}/accept", response_model=ProposalRead)
async def accept_proposal(
    proposal_id: int,
    user: User = Depends(require_user),
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> Proposal:
    return await coordinator().accept_proposal(proposal_id)


@router.patch("/{proposal_id}/reject", response_model=ProposalRead)
async def reject_proposal(
    proposal_id: int,
    user: User = Depends(require_user),
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> Proposal:
    return await coordinator().reject_proposal(proposal_id)


@router.patch("/{proposal_id}/withdraw", response_model=ProposalRead)
async def withdraw_proposal(
    proposal_id: int,
    user: User = Depends(require_user),
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> Proposal:
    return await coordinator().withdraw_proposal(proposal_id)
