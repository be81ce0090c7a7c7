"""Admin recovery: force release, force refund and abandoned-project scans.

These functions only record outcomes of chain calls that have already been
confirmed; driving the ledger is the coordinator's job.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from milestone_escrow.models.project import (
    TERMINAL_MILESTONE_STATUSES,
    MilestoneStatus,
    Project,
    ProjectStatus,
    TokenType,
)
from milestone_escrow.models.submission import MilestoneSubmission, SubmissionStatus
from milestone_escrow.services import disputes as dispute_service
from milestone_escrow.services.milestones import (
    credit_earnings,
    latest_submission,
    maybe_complete,
    require_slot,
    unlock_ready_milestones,
)
from milestone_escrow.utils.audit import log_audit
from milestone_escrow.utils.errors import InvalidState
from milestone_escrow.utils.time import utcnow

logger = logging.getLogger(__name__)

FORCE_RELEASABLE = frozenset({MilestoneStatus.PENDING, MilestoneStatus.SUBMITTED, MilestoneStatus.LOCKED})
_RECOVERABLE_PROJECT_STATUSES = (ProjectStatus.ACTIVE, ProjectStatus.DISPUTED)


def check_can_force_release(project: Project, milestone_num: int) -> bool:
    """Return ``False`` when the milestone is already released, raise when not releasable."""

    require_slot(project, milestone_num)
    status = project.milestone(milestone_num).status
    if status == MilestoneStatus.APPROVED:
        return False
    if project.status not in _RECOVERABLE_PROJECT_STATUSES:
        raise InvalidState(
            "Force release requires an active project.",
            details={"project_id": project.id, "status": project.status.value},
        )
    if status not in FORCE_RELEASABLE:
        raise InvalidState(
            "Milestone cannot be force released.",
            details={"milestone_num": milestone_num, "status": status.value},
        )
    return True


def force_release(db: Session, project: Project, *, milestone_num: int, tx_id: str, actor: str) -> Project:
    if not check_can_force_release(project, milestone_num):
        return project

    previous = project.milestone(milestone_num).status
    project.set_milestone_status(milestone_num, MilestoneStatus.APPROVED)

    submission = latest_submission(db, project.id, milestone_num)
    if submission is not None and submission.status in (SubmissionStatus.SUBMITTED, SubmissionStatus.DISPUTED):
        submission.status = SubmissionStatus.APPROVED
        submission.release_tx_id = tx_id
        submission.reviewed_at = utcnow()

    dispute = dispute_service.open_dispute(db, project.id, milestone_num)
    if dispute is not None:
        dispute_service.close_for_recovery(
            dispute,
            favor_freelancer=True,
            tx_id=tx_id,
            resolution="Closed by admin force release.",
            resolved_by=actor,
        )

    amount = project.milestone(milestone_num).amount
    credit_earnings(db, project, amount)
    unlock_ready_milestones(project)
    if project.status == ProjectStatus.DISPUTED and not dispute_service.open_disputes_for_project(db, project.id):
        project.status = ProjectStatus.ACTIVE
    db.flush()

    log_audit(
        db,
        actor=actor,
        action="MILESTONE_FORCE_RELEASED",
        entity="Project",
        entity_id=project.id,
        data={
            "milestone_num": milestone_num,
            "previous_status": previous.value,
            "tx_id": tx_id,
            "amount": amount,
            "forced": True,
        },
    )
    logger.warning(
        "Milestone force released",
        extra={"project_id": project.id, "milestone_num": milestone_num, "tx_id": tx_id, "actor": actor},
    )
    maybe_complete(db, project, actor=actor)
    return project


def check_can_force_refund(project: Project) -> bool:
    """Return ``False`` when the project is already refunded."""

    if project.status == ProjectStatus.REFUNDED:
        return False
    if project.status not in _RECOVERABLE_PROJECT_STATUSES:
        raise InvalidState(
            "Only funded projects can be refunded.",
            details={"project_id": project.id, "status": project.status.value},
        )
    return True


def force_refund(
    db: Session,
    project: Project,
    *,
    tx_id: str,
    actor: str,
    action: str = "PROJECT_FORCE_REFUNDED",
) -> Project:
    """Refund every unsettled milestone and close the project; repeat calls are no-ops."""

    if not check_can_force_refund(project):
        return project

    refunded: list[int] = []
    for milestone in project.milestones:
        if milestone.status in TERMINAL_MILESTONE_STATUSES:
            continue
        project.set_milestone_status(milestone.num, MilestoneStatus.REFUNDED)
        refunded.append(milestone.num)

    for dispute in dispute_service.open_disputes_for_project(db, project.id):
        dispute_service.close_for_recovery(
            dispute,
            favor_freelancer=False,
            tx_id=tx_id,
            resolution="Closed by project refund.",
            resolved_by=actor,
        )

    pending_reviews = db.scalars(
        select(MilestoneSubmission).where(
            MilestoneSubmission.project_id == project.id,
            MilestoneSubmission.status.in_([SubmissionStatus.SUBMITTED, SubmissionStatus.DISPUTED]),
        )
    )
    for submission in pending_reviews:
        submission.status = SubmissionStatus.REJECTED
        submission.reviewed_at = utcnow()

    project.status = ProjectStatus.REFUNDED
    project.refund_tx_id = tx_id
    db.flush()

    log_audit(
        db,
        actor=actor,
        action=action,
        entity="Project",
        entity_id=project.id,
        data={"tx_id": tx_id, "refunded_milestones": refunded, "forced": action == "PROJECT_FORCE_REFUNDED"},
    )
    logger.warning(
        "Project refunded",
        extra={"project_id": project.id, "tx_id": tx_id, "actor": actor, "refunded": refunded},
    )
    return project


def ensure_client_refund_allowed(db: Session, project: Project, *, emergency: bool) -> None:
    """Client-initiated refunds: full refunds only before any work was delivered."""

    if project.status != ProjectStatus.ACTIVE:
        raise InvalidState(
            "Only active projects can be refunded.",
            details={"project_id": project.id, "status": project.status.value},
        )
    if dispute_service.open_disputes_for_project(db, project.id):
        raise InvalidState("Resolve open disputes before requesting a refund.", details={"project_id": project.id})
    if emergency:
        return
    delivered = [
        m.num
        for m in project.milestones
        if m.status in (MilestoneStatus.SUBMITTED, MilestoneStatus.APPROVED)
    ]
    if delivered:
        raise InvalidState(
            "A full refund is only possible before any milestone was submitted.",
            details={"project_id": project.id, "milestones": delivered},
        )


def abandoned_projects(db: Session, *, older_than: datetime) -> list[Project]:
    stmt = (
        select(Project)
        .where(Project.status == ProjectStatus.ACTIVE, Project.updated_at < older_than)
        .order_by(Project.updated_at.asc(), Project.id.asc())
    )
    return list(db.scalars(stmt))


def released_totals(db: Session) -> dict[TokenType, int]:
    """Micro-units released to freelancers across all projects, per token."""

    totals = {token: 0 for token in TokenType}
    for project in db.scalars(select(Project).where(Project.status != ProjectStatus.OPEN)):
        totals[project.token_type] += sum(
            m.amount for m in project.milestones if m.status == MilestoneStatus.APPROVED
        )
    return totals


__all__ = [
    "FORCE_RELEASABLE",
    "abandoned_projects",
    "check_can_force_refund",
    "check_can_force_release",
    "ensure_client_refund_allowed",
    "force_refund",
    "force_release",
    "released_totals",
]
