"""Reconciliation markers for chain calls whose off-chain commit failed."""
from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from milestone_escrow.models.reconciliation import MarkerStatus, ReconciliationMarker
from milestone_escrow.utils.audit import log_audit
from milestone_escrow.utils.errors import InvalidState, NotFound
from milestone_escrow.utils.time import utcnow


def record_marker(
    db: Session,
    *,
    intent: str,
    entity: str,
    entity_id: int,
    project_id: int | None,
    tx_id: str,
    params: dict[str, Any],
    error: str,
) -> ReconciliationMarker:
    marker = ReconciliationMarker(
        intent=intent,
        entity=entity,
        entity_id=entity_id,
        project_id=project_id,
        tx_id=tx_id,
        params_json=params,
        error=error[:2000],
        status=MarkerStatus.PENDING,
    )
    db.add(marker)
    db.flush()
    return marker


def list_markers(db: Session, *, status: MarkerStatus | None = MarkerStatus.PENDING) -> list[ReconciliationMarker]:
    stmt = select(ReconciliationMarker)
    if status is not None:
        stmt = stmt.where(ReconciliationMarker.status == status)
    stmt = stmt.order_by(ReconciliationMarker.created_at.asc(), ReconciliationMarker.id.asc())
    return list(db.scalars(stmt))


def get_marker(db: Session, marker_id: int) -> ReconciliationMarker:
    marker = db.get(ReconciliationMarker, marker_id)
    if marker is None:
        raise NotFound("Reconciliation marker not found.", details={"marker_id": marker_id})
    return marker


def require_pending(marker: ReconciliationMarker) -> None:
    if marker.status != MarkerStatus.PENDING:
        raise InvalidState(
            "Marker has already been handled.",
            details={"marker_id": marker.id, "status": marker.status.value},
        )


def _close(db: Session, marker: ReconciliationMarker, status: MarkerStatus, *, actor: str) -> ReconciliationMarker:
    require_pending(marker)
    marker.status = status
    marker.resolved_by = actor
    marker.resolved_at = utcnow()
    log_audit(
        db,
        actor=actor,
        action=f"RECONCILIATION_{status.value.upper()}",
        entity="ReconciliationMarker",
        entity_id=marker.id,
        data={"intent": marker.intent, "tx_id": marker.tx_id},
    )
    return marker


def mark_replayed(db: Session, marker: ReconciliationMarker, *, actor: str) -> ReconciliationMarker:
    return _close(db, marker, MarkerStatus.REPLAYED, actor=actor)


def dismiss(db: Session, marker: ReconciliationMarker, *, actor: str) -> ReconciliationMarker:
    return _close(db, marker, MarkerStatus.DISMISSED, actor=actor)


__all__ = ["dismiss", "get_marker", "list_markers", "mark_replayed", "record_marker", "require_pending"]
