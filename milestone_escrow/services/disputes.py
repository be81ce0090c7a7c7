"""Dispute filing and admin arbitration."""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from milestone_escrow.models.dispute import Dispute, DisputeStatus
from milestone_escrow.models.notification import NotificationType
from milestone_escrow.models.project import MilestoneStatus, Project, ProjectStatus
from milestone_escrow.models.submission import MilestoneSubmission, SubmissionStatus
from milestone_escrow.services import notifications
from milestone_escrow.services.milestones import (
    credit_earnings,
    maybe_complete,
    require_slot,
    transition_milestone,
    unlock_ready_milestones,
)
from milestone_escrow.utils.audit import log_audit
from milestone_escrow.utils.errors import Conflict, Forbidden, InvalidState, NotFound
from milestone_escrow.utils.time import utcnow

logger = logging.getLogger(__name__)

_UNSETTLED = {MilestoneStatus.LOCKED, MilestoneStatus.PENDING, MilestoneStatus.SUBMITTED}
# A locked milestone can be refunded but only force release may pay it out.
_RELEASABLE = {MilestoneStatus.PENDING, MilestoneStatus.SUBMITTED}


def get_dispute(db: Session, dispute_id: int) -> Dispute:
    dispute = db.get(Dispute, dispute_id)
    if dispute is None:
        raise NotFound("Dispute not found.", details={"dispute_id": dispute_id})
    return dispute


def open_dispute(db: Session, project_id: int, milestone_num: int) -> Dispute | None:
    stmt = select(Dispute).where(
        Dispute.project_id == project_id,
        Dispute.milestone_num == milestone_num,
        Dispute.status == DisputeStatus.OPEN,
    )
    return db.scalars(stmt).first()


def open_disputes_for_project(db: Session, project_id: int) -> list[Dispute]:
    stmt = select(Dispute).where(Dispute.project_id == project_id, Dispute.status == DisputeStatus.OPEN)
    return list(db.scalars(stmt))


def list_all(db: Session, *, status: DisputeStatus | None = None) -> list[Dispute]:
    stmt = select(Dispute)
    if status is not None:
        stmt = stmt.where(Dispute.status == status)
    stmt = stmt.order_by(Dispute.created_at.desc(), Dispute.id.desc())
    return list(db.scalars(stmt))


def list_for_project(db: Session, project_id: int) -> list[Dispute]:
    stmt = (
        select(Dispute)
        .where(Dispute.project_id == project_id)
        .order_by(Dispute.created_at.desc(), Dispute.id.desc())
    )
    return list(db.scalars(stmt))


def _disputed_submission(db: Session, project_id: int, milestone_num: int) -> MilestoneSubmission | None:
    stmt = (
        select(MilestoneSubmission)
        .where(
            MilestoneSubmission.project_id == project_id,
            MilestoneSubmission.milestone_num == milestone_num,
            MilestoneSubmission.status == SubmissionStatus.DISPUTED,
        )
        .order_by(MilestoneSubmission.submitted_at.desc(), MilestoneSubmission.id.desc())
        .limit(1)
    )
    return db.scalars(stmt).first()


def _restore_legacy_disputed(db: Session, project: Project) -> None:
    # Older rows flagged the whole project as disputed.
    if project.status == ProjectStatus.DISPUTED and not open_disputes_for_project(db, project.id):
        project.status = ProjectStatus.ACTIVE


def check_can_file(db: Session, project: Project, milestone_num: int, filed_by: int) -> None:
    require_slot(project, milestone_num)
    existing = open_dispute(db, project.id, milestone_num)
    if existing is not None:
        raise Conflict(
            "An open dispute already exists for this milestone.",
            details={"dispute_id": existing.id},
        )
    if project.status != ProjectStatus.ACTIVE:
        raise InvalidState(
            "Disputes can only be filed on active projects.",
            details={"project_id": project.id, "status": project.status.value},
        )
    milestone = project.milestone(milestone_num)
    if milestone.is_terminal:
        raise InvalidState(
            "Settled milestones cannot be disputed.",
            details={"milestone_num": milestone_num, "status": milestone.status.value},
        )
    if filed_by not in (project.client_id, project.freelancer_id):
        raise Forbidden("Only project participants can file disputes.", details={"project_id": project.id})


def file(
    db: Session,
    project: Project,
    *,
    milestone_num: int,
    filed_by: int,
    reason: str,
    evidence_url: str | None = None,
    dispute_tx_id: str | None = None,
    actor: str,
) -> Dispute:
    """Open a dispute; the milestone's escrow status is left untouched."""

    check_can_file(db, project, milestone_num, filed_by)
    dispute = Dispute(
        project_id=project.id,
        milestone_num=milestone_num,
        filed_by=filed_by,
        reason=reason,
        evidence_url=evidence_url,
        status=DisputeStatus.OPEN,
        dispute_tx_id=dispute_tx_id,
    )
    db.add(dispute)

    latest = db.scalars(
        select(MilestoneSubmission)
        .where(
            MilestoneSubmission.project_id == project.id,
            MilestoneSubmission.milestone_num == milestone_num,
        )
        .order_by(MilestoneSubmission.submitted_at.desc(), MilestoneSubmission.id.desc())
        .limit(1)
    ).first()
    if latest is not None and latest.status == SubmissionStatus.SUBMITTED:
        latest.status = SubmissionStatus.DISPUTED
    db.flush()

    counterparty = project.freelancer_id if filed_by == project.client_id else project.client_id
    if counterparty is not None:
        notifications.notify(
            db,
            user_id=counterparty,
            type=NotificationType.DISPUTE_FILED,
            title="Dispute filed",
            message=f'A dispute was filed on milestone {milestone_num} of "{project.title}".',
            project_id=project.id,
        )
    log_audit(
        db,
        actor=actor,
        action="DISPUTE_FILED",
        entity="Dispute",
        entity_id=dispute.id,
        data={
            "project_id": project.id,
            "milestone_num": milestone_num,
            "evidence_url": evidence_url,
            "dispute_tx_id": dispute_tx_id,
        },
    )
    logger.info(
        "Dispute filed",
        extra={"dispute_id": dispute.id, "project_id": project.id, "milestone_num": milestone_num},
    )
    return dispute


def check_can_resolve(dispute: Dispute, project: Project, *, favor_freelancer: bool) -> None:
    if dispute.status != DisputeStatus.OPEN:
        raise InvalidState(
            "Only open disputes can be resolved.",
            details={"dispute_id": dispute.id, "status": dispute.status.value},
        )
    milestone = project.milestone(dispute.milestone_num)
    if milestone.is_terminal:
        raise InvalidState(
            "Milestone has already been settled.",
            details={"milestone_num": milestone.num, "status": milestone.status.value},
        )
    if favor_freelancer and milestone.status not in _RELEASABLE:
        raise InvalidState(
            "Locked milestones can only be paid out through force release.",
            details={"milestone_num": milestone.num, "status": milestone.status.value},
        )


def is_already_resolved(dispute: Dispute, resolution_tx_id: str | None) -> bool:
    return (
        dispute.status == DisputeStatus.RESOLVED
        and resolution_tx_id is not None
        and dispute.resolution_tx_id == resolution_tx_id
    )


def close_for_recovery(
    dispute: Dispute,
    *,
    favor_freelancer: bool,
    tx_id: str,
    resolution: str,
    resolved_by: str,
) -> None:
    """Close an open dispute as part of a force action without touching milestones."""

    dispute.status = DisputeStatus.RESOLVED
    dispute.resolution = resolution
    dispute.resolution_tx_id = tx_id
    dispute.favor_freelancer = favor_freelancer
    dispute.resolved_by = resolved_by
    dispute.resolved_at = utcnow()


def resolve(
    db: Session,
    dispute: Dispute,
    project: Project,
    *,
    resolution: str,
    resolution_tx_id: str,
    favor_freelancer: bool,
    resolved_by: str,
) -> Dispute:
    if is_already_resolved(dispute, resolution_tx_id):
        return dispute

    check_can_resolve(dispute, project, favor_freelancer=favor_freelancer)
    num = dispute.milestone_num
    target = MilestoneStatus.APPROVED if favor_freelancer else MilestoneStatus.REFUNDED
    allowed = _RELEASABLE if favor_freelancer else _UNSETTLED
    transition_milestone(project, num, target, allowed_from=allowed)

    dispute.status = DisputeStatus.RESOLVED
    dispute.resolution = resolution
    dispute.resolution_tx_id = resolution_tx_id
    dispute.favor_freelancer = favor_freelancer
    dispute.resolved_by = resolved_by
    dispute.resolved_at = utcnow()

    submission = _disputed_submission(db, project.id, num)
    if submission is not None:
        submission.status = SubmissionStatus.APPROVED if favor_freelancer else SubmissionStatus.REJECTED
        submission.reviewed_at = utcnow()
        if favor_freelancer:
            submission.release_tx_id = resolution_tx_id

    if favor_freelancer:
        credit_earnings(db, project, project.milestone(num).amount)
    unlock_ready_milestones(project)
    db.flush()
    _restore_legacy_disputed(db, project)

    outcome = "freelancer" if favor_freelancer else "client"
    for user_id in (project.client_id, project.freelancer_id):
        if user_id is None:
            continue
        notifications.notify(
            db,
            user_id=user_id,
            type=NotificationType.DISPUTE_RESOLVED,
            title="Dispute resolved",
            message=f'The dispute on milestone {num} of "{project.title}" was resolved in favor of the {outcome}.',
            project_id=project.id,
        )
    log_audit(
        db,
        actor=resolved_by,
        action="DISPUTE_RESOLVED",
        entity="Dispute",
        entity_id=dispute.id,
        data={
            "project_id": project.id,
            "milestone_num": num,
            "favor_freelancer": favor_freelancer,
            "resolution_tx_id": resolution_tx_id,
        },
    )
    maybe_complete(db, project, actor=resolved_by)
    return dispute


def reset(db: Session, dispute: Dispute, project: Project, *, note: str, marker: str, resolved_by: str) -> Dispute:
    """Close a dispute without moving funds and reopen the milestone for work."""

    if dispute.status == DisputeStatus.RESET:
        return dispute
    if dispute.status != DisputeStatus.OPEN:
        raise InvalidState(
            "Only open disputes can be reset.",
            details={"dispute_id": dispute.id, "status": dispute.status.value},
        )
    num = dispute.milestone_num
    milestone = project.milestone(num)
    if milestone.is_terminal:
        raise InvalidState(
            "Funds have already moved for this milestone.",
            details={"milestone_num": num, "status": milestone.status.value},
        )

    dispute.status = DisputeStatus.RESET
    dispute.resolution = note
    dispute.resolution_tx_id = marker
    dispute.resolved_by = resolved_by
    dispute.resolved_at = utcnow()

    # A milestone still waiting on its predecessor stays locked.
    if milestone.status != MilestoneStatus.LOCKED:
        project.set_milestone_status(num, MilestoneStatus.PENDING)
    submission = _disputed_submission(db, project.id, num)
    if submission is not None:
        submission.status = SubmissionStatus.REJECTED
        submission.reviewed_at = utcnow()
    db.flush()
    _restore_legacy_disputed(db, project)

    log_audit(
        db,
        actor=resolved_by,
        action="DISPUTE_RESET",
        entity="Dispute",
        entity_id=dispute.id,
        data={"project_id": project.id, "milestone_num": num, "marker": marker},
    )
    return dispute


__all__ = [
    "check_can_file",
    "check_can_resolve",
    "close_for_recovery",
    "file",
    "get_dispute",
    "is_already_resolved",
    "list_all",
    "list_for_project",
    "open_dispute",
    "open_disputes_for_project",
    "reset",
    "resolve",
]
