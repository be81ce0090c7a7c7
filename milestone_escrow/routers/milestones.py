"""Milestone submission and review endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from milestone_escrow.db import get_db
from milestone_escrow.models.api_key import ApiScope
from milestone_escrow.models.submission import MilestoneSubmission
from milestone_escrow.models.user import User
from milestone_escrow.routers.deps import CoordinatorFactory, get_coordinator_factory
from milestone_escrow.routers.projects import milestone_views
from milestone_escrow.schemas.milestone import MilestoneApprove, MilestoneSubmit, SubmissionRead
from milestone_escrow.schemas.project import MilestoneView
from milestone_escrow.security import require_scope, require_user
from milestone_escrow.services import projects as project_service

router = APIRouter(prefix="/milestones", tags=["milestones"])


@router.post("/submit", response_model=SubmissionRead, status_code=status.HTTP_201_CREATED)
async def submit_milestone(
    payload: MilestoneSubmit,
    user: User = Depends(require_user),
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> MilestoneSubmission:
    return await coordinator().submit_milestone(
        payload.project_id,
        payload.milestone_num,
        payload.deliverable_url,
        description=payload.description,
        completion_tx_id=payload.completion_tx_id,
    )


@router.patch("/{submission_id}/approve", response_model=SubmissionRead)
async def approve_milestone(
    submission_id: int,
    payload: MilestoneApprove,
    user: User = Depends(require_user),
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> MilestoneSubmission:
    return await coordinator(payload.release_tx_id).approve_milestone(
        submission_id, release_tx_id=payload.release_tx_id
    )


@router.patch("/{submission_id}/reject", response_model=SubmissionRead)
async def reject_milestone(
    submission_id: int,
    user: User = Depends(require_user),
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> MilestoneSubmission:
    return await coordinator().reject_milestone(submission_id)


@router.get(
    "/project/{project_id}",
    response_model=list[MilestoneView],
    dependencies=[Depends(require_scope({ApiScope.user}))],
)
def list_project_milestones(project_id: int, db: Session = Depends(get_db)) -> list[MilestoneView]:
    project = project_service.get_project(db, project_id)
    return milestone_views(db, project)
