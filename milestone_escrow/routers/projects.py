"""Project endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from milestone_escrow.db import get_db
from milestone_escrow.models.api_key import ApiScope
from milestone_escrow.models.project import Project, ProjectStatus, TokenType
from milestone_escrow.models.user import User
from milestone_escrow.routers.deps import CoordinatorFactory, get_coordinator_factory
from milestone_escrow.schemas.dispute import DisputeRead
from milestone_escrow.schemas.milestone import SubmissionRead
from milestone_escrow.schemas.project import (
    MilestoneView,
    ProgressRead,
    ProjectActivate,
    ProjectCreate,
    ProjectDetail,
    ProjectRead,
    RefundRequest,
)
from milestone_escrow.security import require_scope, require_user
from milestone_escrow.services import disputes as dispute_service
from milestone_escrow.services import milestones as milestone_service
from milestone_escrow.services import projects as project_service
from milestone_escrow.services.amounts import format_amount

router = APIRouter(prefix="/projects", tags=["projects"])


def milestone_views(db: Session, project: Project) -> list[MilestoneView]:
    """Milestones with their derived display status and latest submission."""

    disputed = {d.milestone_num for d in dispute_service.open_disputes_for_project(db, project.id)}
    views = []
    for milestone in project.milestones:
        latest = milestone_service.latest_submission(db, project.id, milestone.num)
        views.append(
            MilestoneView(
                num=milestone.num,
                title=milestone.title,
                description=milestone.description,
                amount=milestone.amount,
                amount_display=format_amount(milestone.amount, project.token_type),
                status=milestone.status,
                display_status="disputed" if milestone.num in disputed else milestone.status.value,
                latest_submission=SubmissionRead.model_validate(latest) if latest else None,
            )
        )
    return views


def project_detail(db: Session, project: Project) -> ProjectDetail:
    base = ProjectRead.model_validate(project)
    return ProjectDetail(
        **base.model_dump(),
        milestones=milestone_views(db, project),
        progress=ProgressRead.model_validate(project_service.progress(project)),
        disputes=[DisputeRead.model_validate(d) for d in dispute_service.list_for_project(db, project.id)],
    )


@router.post("", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
async def create_project(
    payload: ProjectCreate,
    user: User = Depends(require_user),
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> Project:
    return await coordinator().create_project(payload)


@router.get(
    "",
    response_model=list[ProjectRead],
    dependencies=[Depends(require_scope({ApiScope.user}))],
)
def list_projects(
    category: str | None = None,
    token_type: TokenType | None = Query(default=None, alias="tokenType"),
    status_filter: ProjectStatus | None = Query(default=None, alias="status"),
    search: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> list[Project]:
    return project_service.list_projects(
        db,
        category=category,
        token_type=token_type,
        status=status_filter,
        search=search,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{project_id}",
    response_model=ProjectDetail,
    dependencies=[Depends(require_scope({ApiScope.user}))],
)
def get_project(project_id: int, db: Session = Depends(get_db)) -> ProjectDetail:
    project = project_service.get_project(db, project_id)
    return project_detail(db, project)


@router.patch("/{project_id}/activate", response_model=ProjectDetail)
async def activate_project(
    project_id: int,
    payload: ProjectActivate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> ProjectDetail:
    project = await coordinator(payload.escrow_tx_id).activate_project(
        project_id, on_chain_id=payload.on_chain_id, escrow_tx_id=payload.escrow_tx_id
    )
    return project_detail(db, project)


@router.patch("/{project_id}/cancel", response_model=ProjectRead)
async def cancel_project(
    project_id: int,
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> Project:
    return await coordinator().cancel_project(project_id)


@router.post("/{project_id}/refund", response_model=ProjectDetail)
async def request_refund(
    project_id: int,
    payload: RefundRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
    coordinator: CoordinatorFactory = Depends(get_coordinator_factory),
) -> ProjectDetail:
    project = await coordinator(payload.tx_id).request_refund(
        project_id, emergency=payload.emergency, tx_id=payload.tx_id
    )
    return project_detail(db, project)
