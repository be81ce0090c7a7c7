import logging
from datetime import timedelta

from milestone_escrow.services import reconciliation
from milestone_escrow.services.cron import report_stalled_work_once
from milestone_escrow.utils.time import utcnow


def test_quiet_run_reports_nothing(caplog):
    with caplog.at_level(logging.WARNING, logger="milestone_escrow.services.cron"):
        assert report_stalled_work_once() == {"pending_markers": 0, "abandoned_projects": 0}
    assert caplog.records == []


def test_reports_orphans_and_abandoned_projects(db_session, make_active_project, caplog):
    project, _, _ = make_active_project()
    project.updated_at = utcnow() - timedelta(days=90)
    reconciliation.record_marker(
        db_session,
        intent="approve_milestone",
        entity="MilestoneSubmission",
        entity_id=1,
        project_id=project.id,
        tx_id="0xdeadbeef",
        params={"submission_id": 1},
        error="OperationalError: disk I/O error",
    )
    db_session.commit()

    with caplog.at_level(logging.WARNING, logger="milestone_escrow.services.cron"):
        result = report_stalled_work_once()

    assert result == {"pending_markers": 1, "abandoned_projects": 1}
    orphan = next(r for r in caplog.records if r.levelno == logging.ERROR)
    assert orphan.tx_id == "0xdeadbeef"
    assert orphan.intent == "approve_milestone"
    stale = next(r for r in caplog.records if r.levelno == logging.WARNING)
    assert stale.project_ids == [project.id]
