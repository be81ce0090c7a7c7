from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError

from milestone_escrow.routers import health
from milestone_escrow.services import reconciliation

pytestmark = pytest.mark.anyio

PROJECT_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(autouse=True)
def _run_from_project_root(monkeypatch):
    monkeypatch.chdir(PROJECT_ROOT)


async def test_health_reports_ok(client):
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["db_ok"] is True
    assert body["migrations_status"] == "up_to_date"
    assert body["pending_reconciliation_markers"] == 0
    assert body["scheduler_running"] is False
    assert body["scheduler_lock"]["present"] is False


async def test_pending_markers_degrade_health(client, db_session):
    reconciliation.record_marker(
        db_session,
        intent="approve_milestone",
        entity="MilestoneSubmission",
        entity_id=1,
        project_id=None,
        tx_id="0xorphan",
        params={"submission_id": 1},
        error="OperationalError: database is locked",
    )
    db_session.commit()

    body = (await client.get("/health")).json()
    assert body["status"] == "degraded"
    assert body["pending_reconciliation_markers"] == 1


async def test_unreachable_database_is_reported(client, monkeypatch):
    def _broken_engine():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(health, "get_engine", _broken_engine)

    body = (await client.get("/health")).json()
    assert body["status"] == "degraded"
    assert body["db_status"] == "error"
    assert body["migrations_status"] == "unknown"
    assert body["pending_reconciliation_markers"] is None
    assert body["scheduler_lock"] is None
