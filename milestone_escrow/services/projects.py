"""Project records: creation, lookup, listing and cancellation."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from milestone_escrow.models.project import MilestoneStatus, Project, ProjectStatus, TokenType
from milestone_escrow.models.proposal import Proposal, ProposalStatus
from milestone_escrow.models.user import User
from milestone_escrow.schemas.project import ProjectCreate
from milestone_escrow.services.amounts import sum_amounts, to_micro
from milestone_escrow.utils.audit import log_audit
from milestone_escrow.utils.errors import InvalidState, NotFound, ValidationError

logger = logging.getLogger(__name__)


def get_project(db: Session, project_id: int) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise NotFound("Project not found.", details={"project_id": project_id})
    return project


def create_project(db: Session, payload: ProjectCreate, *, client: User, actor: str) -> Project:
    """Persist an open project with its milestone slots filled in order."""

    token = TokenType(payload.token_type)
    amounts = [to_micro(m.amount, token) for m in payload.milestones]
    if any(amount <= 0 for amount in amounts):
        raise ValidationError("Every milestone amount must be at least one micro-unit.")
    total = sum_amounts(amounts)

    if payload.total_budget is not None:
        declared = to_micro(payload.total_budget, token)
        # Per-milestone flooring may lose at most one micro-unit each.
        if abs(declared - total) > len(amounts):
            raise ValidationError(
                "Milestone amounts do not add up to the total budget.",
                details={"total_budget": declared, "milestone_sum": total},
            )

    project = Project(
        client_id=client.id,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        subcategory=payload.subcategory,
        token_type=token,
        num_milestones=len(payload.milestones),
        total_budget=total,
        status=ProjectStatus.OPEN,
    )
    for num, (milestone, amount) in enumerate(zip(payload.milestones, amounts), start=1):
        setattr(project, f"milestone_{num}_title", milestone.title)
        setattr(project, f"milestone_{num}_description", milestone.description)
        setattr(project, f"milestone_{num}_amount", amount)
        setattr(project, f"milestone_{num}_status", MilestoneStatus.LOCKED)

    db.add(project)
    db.flush()
    log_audit(
        db,
        actor=actor,
        action="PROJECT_CREATED",
        entity="Project",
        entity_id=project.id,
        data={"token_type": token.value, "total_budget": total, "num_milestones": project.num_milestones},
    )
    logger.info(
        "Project created",
        extra={"project_id": project.id, "client_id": client.id, "total_budget": total},
    )
    return project


def list_projects(
    db: Session,
    *,
    category: str | None = None,
    token_type: TokenType | None = None,
    status: ProjectStatus | None = None,
    search: str | None = None,
    client_id: int | None = None,
    freelancer_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Project]:
    stmt = select(Project)
    if category:
        stmt = stmt.where(Project.category == category)
    if token_type is not None:
        stmt = stmt.where(Project.token_type == token_type)
    if status is not None:
        stmt = stmt.where(Project.status == status)
    if client_id is not None:
        stmt = stmt.where(Project.client_id == client_id)
    if freelancer_id is not None:
        stmt = stmt.where(Project.freelancer_id == freelancer_id)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Project.title.ilike(pattern), Project.description.ilike(pattern)))
    stmt = stmt.order_by(Project.created_at.desc(), Project.id.desc()).offset(offset).limit(limit)
    return list(db.scalars(stmt))


def cancel_project(db: Session, project: Project, *, actor: str) -> Project:
    """Withdraw an unfunded project; pending proposals are rejected with it."""

    if project.status == ProjectStatus.CANCELLED:
        return project
    if project.status != ProjectStatus.OPEN:
        raise InvalidState(
            "Only open projects can be cancelled.",
            details={"project_id": project.id, "status": project.status.value},
        )

    project.status = ProjectStatus.CANCELLED
    db.execute(
        update(Proposal)
        .where(Proposal.project_id == project.id, Proposal.status == ProposalStatus.PENDING)
        .values(status=ProposalStatus.REJECTED)
        .execution_options(synchronize_session="fetch")
    )
    db.flush()
    log_audit(db, actor=actor, action="PROJECT_CANCELLED", entity="Project", entity_id=project.id)
    return project


@dataclass(frozen=True)
class ProjectProgress:
    total: int
    approved: int
    refunded: int
    released_amount: int
    percent: int


def progress(project: Project) -> ProjectProgress:
    milestones = project.milestones
    approved = [m for m in milestones if m.status == MilestoneStatus.APPROVED]
    refunded = [m for m in milestones if m.status == MilestoneStatus.REFUNDED]
    total = len(milestones)
    return ProjectProgress(
        total=total,
        approved=len(approved),
        refunded=len(refunded),
        released_amount=sum_amounts(m.amount for m in approved),
        percent=round(len(approved) * 100 / total) if total else 0,
    )


__all__ = [
    "ProjectProgress",
    "cancel_project",
    "create_project",
    "get_project",
    "list_projects",
    "progress",
]
