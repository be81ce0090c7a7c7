"""Admin dashboard aggregates."""
from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from milestone_escrow.models.dispute import Dispute, DisputeStatus
from milestone_escrow.models.project import Project, ProjectStatus, TokenType
from milestone_escrow.models.reconciliation import MarkerStatus, ReconciliationMarker
from milestone_escrow.models.user import User
from milestone_escrow.services.recovery import released_totals


def dashboard(db: Session) -> dict[str, object]:
    by_status = {status.value: 0 for status in ProjectStatus}
    rows = db.execute(select(Project.status, func.count(Project.id)).group_by(Project.status))
    for status, count in rows:
        by_status[ProjectStatus(status).value] = count

    released = released_totals(db)
    return {
        "total_users": db.scalar(select(func.count(User.id))) or 0,
        "total_projects": sum(by_status.values()),
        "projects_by_status": by_status,
        "open_disputes": db.scalar(
            select(func.count(Dispute.id)).where(Dispute.status == DisputeStatus.OPEN)
        )
        or 0,
        "pending_markers": db.scalar(
            select(func.count(ReconciliationMarker.id)).where(
                ReconciliationMarker.status == MarkerStatus.PENDING
            )
        )
        or 0,
        "released_stx": released[TokenType.STX],
        "released_sbtc": released[TokenType.SBTC],
    }


__all__ = ["dashboard"]
