"""Proposal matching: bids on open projects and the single accepted winner."""
from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from milestone_escrow.models.notification import NotificationType
from milestone_escrow.models.project import Project, ProjectStatus
from milestone_escrow.models.proposal import Proposal, ProposalStatus
from milestone_escrow.services import notifications
from milestone_escrow.utils.audit import log_audit
from milestone_escrow.utils.errors import Conflict, Duplicate, InvalidState, NotFound

logger = logging.getLogger(__name__)


def get_proposal(db: Session, proposal_id: int) -> Proposal:
    proposal = db.get(Proposal, proposal_id)
    if proposal is None:
        raise NotFound("Proposal not found.", details={"proposal_id": proposal_id})
    return proposal


def accepted_proposals(db: Session, project_id: int) -> list[Proposal]:
    stmt = select(Proposal).where(
        Proposal.project_id == project_id, Proposal.status == ProposalStatus.ACCEPTED
    )
    return list(db.scalars(stmt))


def list_for_project(db: Session, project_id: int) -> list[Proposal]:
    stmt = (
        select(Proposal)
        .where(Proposal.project_id == project_id)
        .order_by(Proposal.created_at.asc(), Proposal.id.asc())
    )
    return list(db.scalars(stmt))


def submit(db: Session, project: Project, *, freelancer_id: int, cover_letter: str, actor: str) -> Proposal:
    if project.status != ProjectStatus.OPEN:
        raise InvalidState(
            "Proposals can only be submitted to open projects.",
            details={"project_id": project.id, "status": project.status.value},
        )
    existing = db.scalars(
        select(Proposal).where(
            Proposal.project_id == project.id,
            Proposal.freelancer_id == freelancer_id,
            Proposal.status != ProposalStatus.WITHDRAWN,
        )
    ).first()
    if existing is not None:
        raise Duplicate(
            "You already have a proposal on this project.",
            details={"proposal_id": existing.id},
        )

    proposal = Proposal(
        project_id=project.id,
        freelancer_id=freelancer_id,
        cover_letter=cover_letter,
        status=ProposalStatus.PENDING,
    )
    db.add(proposal)
    db.flush()
    notifications.notify(
        db,
        user_id=project.client_id,
        type=NotificationType.PROPOSAL_RECEIVED,
        title="New proposal received",
        message=f'A freelancer submitted a proposal for "{project.title}".',
        project_id=project.id,
    )
    log_audit(
        db,
        actor=actor,
        action="PROPOSAL_SUBMITTED",
        entity="Proposal",
        entity_id=proposal.id,
        data={"project_id": project.id},
    )
    return proposal


def accept(db: Session, proposal: Proposal, project: Project, *, actor: str) -> Proposal:
    """Accept ``proposal`` and reject its pending siblings in the same unit of work."""

    if project.status != ProjectStatus.OPEN:
        raise InvalidState(
            "Proposals can only be accepted on open projects.",
            details={"project_id": project.id, "status": project.status.value},
        )
    if proposal.status == ProposalStatus.ACCEPTED:
        return proposal
    if proposal.status != ProposalStatus.PENDING:
        raise InvalidState(
            "Only pending proposals can be accepted.",
            details={"proposal_id": proposal.id, "status": proposal.status.value},
        )

    already = [p for p in accepted_proposals(db, project.id) if p.id != proposal.id]
    if already:
        raise Conflict(
            "Another proposal has already been accepted for this project.",
            details={"accepted_proposal_id": already[0].id},
        )

    # Conditional update so a concurrent transition of the same row is not overwritten.
    result = db.execute(
        update(Proposal)
        .where(Proposal.id == proposal.id, Proposal.status == ProposalStatus.PENDING)
        .values(status=ProposalStatus.ACCEPTED)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise Conflict("Proposal changed while it was being accepted.", details={"proposal_id": proposal.id})

    rejected = db.execute(
        update(Proposal)
        .where(
            Proposal.project_id == project.id,
            Proposal.id != proposal.id,
            Proposal.status == ProposalStatus.PENDING,
        )
        .values(status=ProposalStatus.REJECTED)
        .execution_options(synchronize_session="fetch")
    ).rowcount
    db.flush()

    notifications.notify(
        db,
        user_id=proposal.freelancer_id,
        type=NotificationType.PROPOSAL_ACCEPTED,
        title="Proposal accepted",
        message=f'Your proposal for "{project.title}" was accepted.',
        project_id=project.id,
    )
    log_audit(
        db,
        actor=actor,
        action="PROPOSAL_ACCEPTED",
        entity="Proposal",
        entity_id=proposal.id,
        data={"project_id": project.id, "siblings_rejected": rejected or 0},
    )
    logger.info(
        "Proposal accepted",
        extra={"proposal_id": proposal.id, "project_id": project.id, "siblings_rejected": rejected},
    )
    return proposal


def _guarded_transition(db: Session, proposal: Proposal, target: ProposalStatus, *, actor: str) -> Proposal:
    if proposal.status == target:
        return proposal
    if proposal.status != ProposalStatus.PENDING:
        raise InvalidState(
            f"Only pending proposals can be {target.value}.",
            details={"proposal_id": proposal.id, "status": proposal.status.value},
        )
    proposal.status = target
    db.flush()
    log_audit(
        db,
        actor=actor,
        action=f"PROPOSAL_{target.value.upper()}",
        entity="Proposal",
        entity_id=proposal.id,
        data={"project_id": proposal.project_id},
    )
    return proposal


def reject(db: Session, proposal: Proposal, *, actor: str) -> Proposal:
    return _guarded_transition(db, proposal, ProposalStatus.REJECTED, actor=actor)


def withdraw(db: Session, proposal: Proposal, *, actor: str) -> Proposal:
    return _guarded_transition(db, proposal, ProposalStatus.WITHDRAWN, actor=actor)


__all__ = [
    "accept",
    "accepted_proposals",
    "get_proposal",
    "list_for_project",
    "reject",
    "submit",
    "withdraw",
]
