"""Background cron jobs for maintenance tasks."""
from __future__ import annotations

import logging
from datetime import timedelta

from milestone_escrow import db
from milestone_escrow.config import get_settings
from milestone_escrow.services.reconciliation import list_markers
from milestone_escrow.services.recovery import abandoned_projects
from milestone_escrow.utils.time import utcnow

logger = logging.getLogger(__name__)


def report_stalled_work_once() -> dict[str, int]:
    """Log pending reconciliation markers and abandoned projects for operators."""

    with db.session_scope() as session:
        markers = list_markers(session)
        for marker in markers:
            logger.error(
                "Unreconciled on-chain transaction",
                extra={
                    "marker_id": marker.id,
                    "intent": marker.intent,
                    "tx_id": marker.tx_id,
                    "project_id": marker.project_id,
                },
            )

        cutoff = utcnow() - timedelta(days=get_settings().ABANDONED_PROJECT_DAYS)
        stale = abandoned_projects(session, older_than=cutoff)
        if stale:
            logger.warning(
                "Abandoned projects detected",
                extra={"project_ids": [project.id for project in stale], "cutoff": cutoff.isoformat()},
            )
        return {"pending_markers": len(markers), "abandoned_projects": len(stale)}


__all__ = ["report_stalled_work_once"]
