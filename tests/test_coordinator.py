import asyncio
import logging

import pytest
from sqlalchemy.exc import OperationalError

from milestone_escrow.models.audit import AuditLog
from milestone_escrow.models.project import MilestoneStatus
from milestone_escrow.models.reconciliation import MarkerStatus
from milestone_escrow.models.submission import SubmissionStatus
from milestone_escrow.services import milestones as milestone_service
from milestone_escrow.services import reconciliation
from milestone_escrow.services.coordinator import TwoPhaseState
from milestone_escrow.services.ledger import Cancelled, Confirmed, Failed
from milestone_escrow.services.ownership import fetch_ownership_state
from milestone_escrow.utils.errors import (
    InvalidState,
    LedgerCallFailed,
    OrphanedOnChain,
    SigningCancelled,
    ValidationError,
)

from conftest import ScriptedBridge, random_address

pytestmark = pytest.mark.anyio


class GatedBridge:
    """Holds the signing step open until the test releases it."""

    def __init__(self, tx_id: str = "0xgated") -> None:
        self.tx_id = tx_id
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = []

    async def execute(self, call):
        self.calls.append(call)
        self.entered.set()
        await self.release.wait()
        return Confirmed(tx_id=self.tx_id)


@pytest.fixture
async def submitted(make_coordinator, make_active_project):
    project, client, freelancer = make_active_project()
    submission = await make_coordinator(user=freelancer).submit_milestone(project.id, 1, "https://example.com/a")
    return project, client, freelancer, submission


def _break_approve(monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(milestone_service, "approve", broken)


@pytest.mark.parametrize(
    ("outcome", "error", "state"),
    [
        (Cancelled(reason="wallet closed"), SigningCancelled, TwoPhaseState.CANCELLED),
        (Failed(error="abort_by_response"), LedgerCallFailed, TwoPhaseState.FAILED),
        (ConnectionError("node unreachable"), LedgerCallFailed, TwoPhaseState.FAILED),
    ],
)
async def test_unconfirmed_signing_changes_nothing(db_session, make_coordinator, submitted, outcome, error, state):
    project, client, _, submission = submitted
    coordinator = make_coordinator(user=client, bridge=ScriptedBridge(outcome))

    with pytest.raises(error):
        await coordinator.approve_milestone(submission.id)

    assert coordinator.state == state
    db_session.refresh(submission)
    db_session.refresh(project)
    assert submission.status == SubmissionStatus.SUBMITTED
    assert project.milestone(1).status == MilestoneStatus.SUBMITTED
    assert reconciliation.list_markers(db_session) == []


async def test_lock_is_released_while_awaiting_signature(make_coordinator, lock_registry, submitted):
    project, client, _, submission = submitted
    bridge = GatedBridge()
    coordinator = make_coordinator(user=client, bridge=bridge)

    task = asyncio.create_task(coordinator.approve_milestone(submission.id))
    await bridge.entered.wait()
    assert coordinator.state == TwoPhaseState.AWAITING_SIGNATURE
    assert not lock_registry.lock_for(project.id).locked()

    bridge.release.set()
    approved = await task
    assert approved.release_tx_id == "0xgated"
    assert coordinator.state == TwoPhaseState.COMMITTED


async def test_abandoned_signing_propagates_cancellation(db_session, make_coordinator, submitted):
    _, client, _, submission = submitted
    bridge = GatedBridge()
    coordinator = make_coordinator(user=client, bridge=bridge)

    task = asyncio.create_task(coordinator.approve_milestone(submission.id))
    await bridge.entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert coordinator.state == TwoPhaseState.CANCELLED
    db_session.refresh(submission)
    assert submission.status == SubmissionStatus.SUBMITTED


async def test_failed_commit_records_marker_and_replay_applies_it(
    db_session, monkeypatch, make_coordinator, submitted
):
    project, client, freelancer, submission = submitted
    _break_approve(monkeypatch)
    coordinator = make_coordinator(user=client, bridge=ScriptedBridge(Confirmed(tx_id="0xorphan")))

    with pytest.raises(OrphanedOnChain) as excinfo:
        await coordinator.approve_milestone(submission.id)

    error = excinfo.value
    assert coordinator.state == TwoPhaseState.ORPHANED_ON_CHAIN
    assert (error.tx_id, error.intent) == ("0xorphan", "approve_milestone")
    assert error.retryable is False
    marker = reconciliation.get_marker(db_session, error.marker_id)
    assert marker.status == MarkerStatus.PENDING
    assert marker.project_id == project.id
    assert marker.params_json["submission_id"] == submission.id
    assert marker.params_json["acting_user_id"] == client.id
    assert "database went away" in marker.error

    monkeypatch.undo()
    replayed = await make_coordinator(is_admin=True).replay_marker(marker.id)

    assert replayed.status == MarkerStatus.REPLAYED
    db_session.refresh(submission)
    db_session.refresh(freelancer)
    assert submission.status == SubmissionStatus.APPROVED
    assert submission.release_tx_id == "0xorphan"
    assert freelancer.total_earned_stx == 10_000_000

    with pytest.raises(InvalidState):
        await make_coordinator(is_admin=True).replay_marker(marker.id)


async def test_failed_replay_keeps_a_single_marker(db_session, monkeypatch, make_coordinator, submitted):
    _, client, _, submission = submitted
    _break_approve(monkeypatch)
    with pytest.raises(OrphanedOnChain) as excinfo:
        await make_coordinator(user=client).approve_milestone(submission.id)
    marker_id = excinfo.value.marker_id

    with pytest.raises(OrphanedOnChain) as replay_error:
        await make_coordinator(is_admin=True).replay_marker(marker_id)

    assert replay_error.value.marker_id == marker_id
    markers = reconciliation.list_markers(db_session)
    assert [m.id for m in markers] == [marker_id]


async def test_marker_write_failure_is_logged_critically(monkeypatch, caplog, make_coordinator, submitted):
    _, client, _, submission = submitted
    _break_approve(monkeypatch)

    def no_disk(*args, **kwargs):
        raise OperationalError("INSERT INTO reconciliation_markers", {}, Exception("disk full"))

    monkeypatch.setattr(reconciliation, "record_marker", no_disk)

    with caplog.at_level(logging.ERROR, logger="milestone_escrow.services.coordinator"):
        with pytest.raises(OrphanedOnChain) as excinfo:
            await make_coordinator(user=client).approve_milestone(submission.id)

    assert excinfo.value.marker_id is None
    assert any(record.levelno == logging.CRITICAL for record in caplog.records)


async def test_dismissed_marker_cannot_be_replayed(db_session, monkeypatch, make_coordinator, submitted):
    _, client, _, submission = submitted
    _break_approve(monkeypatch)
    with pytest.raises(OrphanedOnChain) as excinfo:
        await make_coordinator(user=client).approve_milestone(submission.id)

    dismissed = await make_coordinator(is_admin=True).dismiss_marker(excinfo.value.marker_id)
    assert dismissed.status == MarkerStatus.DISMISSED
    assert reconciliation.list_markers(db_session) == []
    assert len(reconciliation.list_markers(db_session, status=None)) == 1

    with pytest.raises(InvalidState):
        await make_coordinator(is_admin=True).replay_marker(dismissed.id)


async def test_activation_without_on_chain_index_is_orphaned(db_session, make_coordinator, make_open_project):
    project, client, _ = make_open_project()

    with pytest.raises(OrphanedOnChain) as excinfo:
        await make_coordinator(user=client, bridge=ScriptedBridge(Confirmed(tx_id="0xnoindex"))).activate_project(
            project.id
        )

    marker = reconciliation.get_marker(db_session, excinfo.value.marker_id)
    assert marker.intent == "activate_project"
    assert "ledger_value" not in marker.params_json


async def test_ownership_transfer_is_two_phase_and_audited(db_session, make_coordinator):
    new_owner = random_address()
    bridge = ScriptedBridge(Confirmed(tx_id="0xpropose"), Confirmed(tx_id="0xaccept"))
    coordinator = make_coordinator(is_admin=True, bridge=bridge)

    assert await coordinator.propose_ownership(new_owner) == new_owner
    assert await coordinator.accept_ownership() == "0xaccept"

    assert [call.function_name for call in bridge.calls] == ["propose-ownership", "accept-ownership"]
    actions = [row.action for row in db_session.query(AuditLog).order_by(AuditLog.id)]
    assert actions[-2:] == ["OWNERSHIP_TRANSFER_PROPOSED", "OWNERSHIP_TRANSFER_ACCEPTED"]


async def test_ownership_proposal_validates_principal(make_coordinator):
    bridge = ScriptedBridge()
    with pytest.raises(ValidationError):
        await make_coordinator(is_admin=True, bridge=bridge).propose_ownership("not-a-principal")
    assert bridge.calls == []


async def test_fetch_ownership_state_reports_pending_transfer():
    owner, proposed = random_address(), random_address()

    class Reader:
        async def read_only(self, function_name):
            return {"get-contract-owner": owner, "get-proposed-owner": proposed}[function_name]

    state = await fetch_ownership_state(Reader())
    assert state.owner == owner
    assert state.transfer_pending is True
