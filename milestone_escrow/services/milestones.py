"""Milestone escrow tracking: activation, submissions, approvals."""
from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from milestone_escrow.models.dispute import Dispute, DisputeStatus
from milestone_escrow.models.notification import NotificationType
from milestone_escrow.models.project import (
    MILESTONE_SLOTS,
    TERMINAL_MILESTONE_STATUSES,
    MilestoneStatus,
    Project,
    ProjectStatus,
    TokenType,
)
from milestone_escrow.models.proposal import Proposal
from milestone_escrow.models.submission import MilestoneSubmission, SubmissionStatus
from milestone_escrow.models.user import User
from milestone_escrow.services import notifications
from milestone_escrow.services.proposals import accepted_proposals
from milestone_escrow.utils.audit import log_audit
from milestone_escrow.utils.errors import Forbidden, InvalidState, NotFound, Precondition, ValidationError
from milestone_escrow.utils.time import utcnow

logger = logging.getLogger(__name__)


# --- Shared helpers ------------------------------------------------------


def require_slot(project: Project, milestone_num: int) -> None:
    if not project.has_slot(milestone_num):
        raise ValidationError(
            "Milestone number is out of range for this project.",
            details={"project_id": project.id, "milestone_num": milestone_num},
        )


def transition_milestone(
    project: Project,
    num: int,
    target: MilestoneStatus,
    *,
    allowed_from: Iterable[MilestoneStatus],
) -> None:
    """Move a milestone slot to ``target``; approved and refunded are write-once."""

    current = project.milestone(num).status
    if current in TERMINAL_MILESTONE_STATUSES:
        raise InvalidState(
            "Milestone has already been settled.",
            details={"project_id": project.id, "milestone_num": num, "status": current.value},
        )
    if current not in set(allowed_from):
        raise InvalidState(
            f"Milestone cannot move from {current.value} to {target.value}.",
            details={"project_id": project.id, "milestone_num": num, "status": current.value},
        )
    project.set_milestone_status(num, target)


def get_submission(db: Session, submission_id: int) -> MilestoneSubmission:
    submission = db.get(MilestoneSubmission, submission_id)
    if submission is None:
        raise NotFound("Submission not found.", details={"submission_id": submission_id})
    return submission


def latest_submission(db: Session, project_id: int, milestone_num: int) -> MilestoneSubmission | None:
    """Latest submission by ``submitted_at``; the highest id wins ties."""

    stmt = (
        select(MilestoneSubmission)
        .where(
            MilestoneSubmission.project_id == project_id,
            MilestoneSubmission.milestone_num == milestone_num,
        )
        .order_by(MilestoneSubmission.submitted_at.desc(), MilestoneSubmission.id.desc())
        .limit(1)
    )
    return db.scalars(stmt).first()


def list_submissions(db: Session, project_id: int) -> list[MilestoneSubmission]:
    stmt = (
        select(MilestoneSubmission)
        .where(MilestoneSubmission.project_id == project_id)
        .order_by(
            MilestoneSubmission.milestone_num.asc(),
            MilestoneSubmission.submitted_at.desc(),
            MilestoneSubmission.id.desc(),
        )
    )
    return list(db.scalars(stmt))


def _has_open_dispute(db: Session, project_id: int, milestone_num: int) -> bool:
    stmt = select(Dispute.id).where(
        Dispute.project_id == project_id,
        Dispute.milestone_num == milestone_num,
        Dispute.status == DisputeStatus.OPEN,
    )
    return db.scalars(stmt).first() is not None


def credit_earnings(db: Session, project: Project, amount: int) -> None:
    if project.freelancer_id is None or amount <= 0:
        return
    freelancer = db.get(User, project.freelancer_id)
    if freelancer is None:
        return
    if project.token_type == TokenType.SBTC:
        freelancer.total_earned_sbtc = (freelancer.total_earned_sbtc or 0) + amount
    else:
        freelancer.total_earned_stx = (freelancer.total_earned_stx or 0) + amount


def unlock_ready_milestones(project: Project) -> list[int]:
    """Unlock locked milestones whose predecessors have all been settled."""

    unlocked: list[int] = []
    for num in MILESTONE_SLOTS:
        if not project.has_slot(num):
            break
        if project.milestone(num).status != MilestoneStatus.LOCKED:
            continue
        previous = [project.milestone(n) for n in range(1, num)]
        if all(m.is_terminal for m in previous):
            project.set_milestone_status(num, MilestoneStatus.PENDING)
            unlocked.append(num)
    return unlocked


def maybe_complete(db: Session, project: Project, *, actor: str) -> bool:
    """Mark the project completed once every milestone is approved.

    A refunded milestone keeps the project active.
    """

    if project.status not in (ProjectStatus.ACTIVE, ProjectStatus.DISPUTED):
        return False
    if not all(m.status == MilestoneStatus.APPROVED for m in project.milestones):
        return False
    project.status = ProjectStatus.COMPLETED
    for user_id in (project.client_id, project.freelancer_id):
        if user_id is None:
            continue
        notifications.notify(
            db,
            user_id=user_id,
            type=NotificationType.PROJECT_COMPLETED,
            title="Project completed",
            message=f'All milestones of "{project.title}" have been approved.',
            project_id=project.id,
        )
    log_audit(db, actor=actor, action="PROJECT_COMPLETED", entity="Project", entity_id=project.id)
    logger.info("Project completed", extra={"project_id": project.id})
    return True


# --- Activation ----------------------------------------------------------


def check_can_activate(db: Session, project: Project) -> Proposal:
    """Return the single accepted proposal or raise ``Precondition``."""

    if project.status != ProjectStatus.OPEN:
        raise Precondition(
            "Only open projects can be funded.",
            details={"project_id": project.id, "status": project.status.value},
        )
    accepted = accepted_proposals(db, project.id)
    if len(accepted) != 1:
        raise Precondition(
            "Exactly one accepted proposal is required before funding.",
            details={"project_id": project.id, "accepted": len(accepted)},
        )
    return accepted[0]


def is_already_active(project: Project, escrow_tx_id: str | None) -> bool:
    return project.status == ProjectStatus.ACTIVE and escrow_tx_id is not None and project.escrow_tx_id == escrow_tx_id


def activate(
    db: Session,
    project: Project,
    *,
    escrow_tx_id: str,
    on_chain_id: int,
    independent_release: bool,
    actor: str,
) -> Project:
    if is_already_active(project, escrow_tx_id):
        return project

    proposal = check_can_activate(db, project)
    project.status = ProjectStatus.ACTIVE
    project.freelancer_id = proposal.freelancer_id
    project.escrow_tx_id = escrow_tx_id
    project.on_chain_id = on_chain_id

    first_only = not independent_release
    for milestone in project.milestones:
        if first_only and milestone.num > 1:
            break
        project.set_milestone_status(milestone.num, MilestoneStatus.PENDING)

    db.flush()
    log_audit(
        db,
        actor=actor,
        action="PROJECT_ACTIVATED",
        entity="Project",
        entity_id=project.id,
        data={
            "escrow_tx_id": escrow_tx_id,
            "on_chain_id": on_chain_id,
            "freelancer_id": proposal.freelancer_id,
            "independent_release": independent_release,
        },
    )
    logger.info(
        "Project activated",
        extra={"project_id": project.id, "on_chain_id": on_chain_id, "escrow_tx_id": escrow_tx_id},
    )
    return project


# --- Submissions ---------------------------------------------------------


def submit(
    db: Session,
    project: Project,
    *,
    milestone_num: int,
    freelancer_id: int,
    deliverable_url: str,
    description: str | None = None,
    completion_tx_id: str | None = None,
    actor: str,
) -> MilestoneSubmission:
    if project.status != ProjectStatus.ACTIVE:
        raise InvalidState(
            "Work can only be submitted on active projects.",
            details={"project_id": project.id, "status": project.status.value},
        )
    require_slot(project, milestone_num)
    if project.freelancer_id != freelancer_id:
        raise Forbidden("Only the assigned freelancer can submit work.", details={"project_id": project.id})
    if _has_open_dispute(db, project.id, milestone_num):
        raise InvalidState(
            "Work cannot be submitted while a dispute is open on this milestone.",
            details={"project_id": project.id, "milestone_num": milestone_num},
        )

    transition_milestone(
        project, milestone_num, MilestoneStatus.SUBMITTED, allowed_from={MilestoneStatus.PENDING}
    )
    submission = MilestoneSubmission(
        project_id=project.id,
        milestone_num=milestone_num,
        freelancer_id=freelancer_id,
        deliverable_url=deliverable_url,
        description=description,
        status=SubmissionStatus.SUBMITTED,
        completion_tx_id=completion_tx_id,
        submitted_at=utcnow(),
    )
    db.add(submission)
    db.flush()

    notifications.notify(
        db,
        user_id=project.client_id,
        type=NotificationType.MILESTONE_SUBMITTED,
        title="Milestone submitted",
        message=f'Milestone {milestone_num} of "{project.title}" is ready for review.',
        project_id=project.id,
    )
    log_audit(
        db,
        actor=actor,
        action="MILESTONE_SUBMITTED",
        entity="MilestoneSubmission",
        entity_id=submission.id,
        data={
            "project_id": project.id,
            "milestone_num": milestone_num,
            "deliverable_url": deliverable_url,
        },
    )
    return submission


def _require_reviewable(db: Session, submission: MilestoneSubmission, project: Project) -> None:
    if project.status not in (ProjectStatus.ACTIVE, ProjectStatus.DISPUTED):
        raise InvalidState(
            "Submissions can only be reviewed on active projects.",
            details={"project_id": project.id, "status": project.status.value},
        )
    if submission.status != SubmissionStatus.SUBMITTED:
        raise InvalidState(
            "Only submitted work can be reviewed.",
            details={"submission_id": submission.id, "status": submission.status.value},
        )
    latest = latest_submission(db, submission.project_id, submission.milestone_num)
    if latest is None or latest.id != submission.id:
        raise InvalidState(
            "A newer submission exists for this milestone.",
            details={"submission_id": submission.id, "latest_id": latest.id if latest else None},
        )
    if _has_open_dispute(db, submission.project_id, submission.milestone_num):
        raise InvalidState(
            "Milestone has an open dispute.",
            details={"project_id": submission.project_id, "milestone_num": submission.milestone_num},
        )


def check_can_approve(db: Session, submission: MilestoneSubmission, project: Project) -> None:
    _require_reviewable(db, submission, project)
    status = project.milestone(submission.milestone_num).status
    if status != MilestoneStatus.SUBMITTED:
        raise InvalidState(
            "Milestone is not awaiting approval.",
            details={"milestone_num": submission.milestone_num, "status": status.value},
        )


def is_already_approved(submission: MilestoneSubmission, release_tx_id: str | None) -> bool:
    return (
        submission.status == SubmissionStatus.APPROVED
        and release_tx_id is not None
        and submission.release_tx_id == release_tx_id
    )


def approve(
    db: Session,
    submission: MilestoneSubmission,
    project: Project,
    *,
    release_tx_id: str,
    actor: str,
) -> MilestoneSubmission:
    if is_already_approved(submission, release_tx_id):
        return submission

    check_can_approve(db, submission, project)
    num = submission.milestone_num
    transition_milestone(project, num, MilestoneStatus.APPROVED, allowed_from={MilestoneStatus.SUBMITTED})
    submission.status = SubmissionStatus.APPROVED
    submission.release_tx_id = release_tx_id
    submission.reviewed_at = utcnow()

    amount = project.milestone(num).amount
    credit_earnings(db, project, amount)
    unlocked = unlock_ready_milestones(project)
    db.flush()

    notifications.notify(
        db,
        user_id=submission.freelancer_id,
        type=NotificationType.MILESTONE_APPROVED,
        title="Milestone approved",
        message=f'Milestone {num} of "{project.title}" was approved and released.',
        project_id=project.id,
    )
    log_audit(
        db,
        actor=actor,
        action="MILESTONE_APPROVED",
        entity="MilestoneSubmission",
        entity_id=submission.id,
        data={
            "project_id": project.id,
            "milestone_num": num,
            "release_tx_id": release_tx_id,
            "amount": amount,
            "unlocked": unlocked,
        },
    )
    maybe_complete(db, project, actor=actor)
    return submission


def reject(db: Session, submission: MilestoneSubmission, project: Project, *, actor: str) -> MilestoneSubmission:
    """Send the work back; the milestone returns to pending for resubmission."""

    _require_reviewable(db, submission, project)
    num = submission.milestone_num
    transition_milestone(project, num, MilestoneStatus.PENDING, allowed_from={MilestoneStatus.SUBMITTED})
    submission.status = SubmissionStatus.REJECTED
    submission.reviewed_at = utcnow()
    db.flush()

    notifications.notify(
        db,
        user_id=submission.freelancer_id,
        type=NotificationType.MILESTONE_REJECTED,
        title="Milestone needs changes",
        message=f'Milestone {num} of "{project.title}" was sent back for revision.',
        project_id=project.id,
    )
    log_audit(
        db,
        actor=actor,
        action="MILESTONE_REJECTED",
        entity="MilestoneSubmission",
        entity_id=submission.id,
        data={"project_id": project.id, "milestone_num": num},
    )
    return submission


__all__ = [
    "activate",
    "approve",
    "check_can_activate",
    "check_can_approve",
    "credit_earnings",
    "get_submission",
    "is_already_active",
    "is_already_approved",
    "latest_submission",
    "list_submissions",
    "maybe_complete",
    "reject",
    "require_slot",
    "submit",
    "transition_milestone",
    "unlock_ready_milestones",
]
