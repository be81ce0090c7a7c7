"""Two-milestone STX contract from posting to a client-favoured dispute."""
import pytest

from milestone_escrow.models.dispute import DisputeStatus
from milestone_escrow.models.project import MilestoneStatus, ProjectStatus
from milestone_escrow.models.proposal import ProposalStatus
from milestone_escrow.models.user import UserRole
from milestone_escrow.services.ledger import PresignedLedgerBridge

from conftest import project_payload

pytestmark = pytest.mark.anyio


@pytest.mark.parametrize("independent", [False, True])
async def test_contract_lifecycle(db_session, make_user, make_coordinator, independent):
    client = make_user(UserRole.CLIENT)
    chosen = make_user(UserRole.FREELANCER)
    sibling = make_user(UserRole.FREELANCER)
    admin = dict(is_admin=True, independent_release=independent)

    def as_client(tx_id=None):
        return make_coordinator(
            user=client, bridge=PresignedLedgerBridge(tx_id), independent_release=independent
        )

    project = await as_client().create_project(project_payload(amounts=("100", "150")))
    assert project.total_budget == 250_000_000
    assert project.status == ProjectStatus.OPEN

    winning = await make_coordinator(user=chosen).submit_proposal(project.id, "I have shipped this before.")
    losing = await make_coordinator(user=sibling).submit_proposal(project.id, "Pick me.")
    await as_client().accept_proposal(winning.id)
    db_session.refresh(losing)
    assert losing.status == ProposalStatus.REJECTED

    project = await as_client("tx1").activate_project(project.id, on_chain_id=7, escrow_tx_id="tx1")
    assert project.status == ProjectStatus.ACTIVE
    assert project.freelancer_id == chosen.id
    assert (project.on_chain_id, project.escrow_tx_id) == (7, "tx1")
    second_status = MilestoneStatus.PENDING if independent else MilestoneStatus.LOCKED
    assert [m.status for m in project.milestones] == [MilestoneStatus.PENDING, second_status]

    submission = await make_coordinator(user=chosen, independent_release=independent).submit_milestone(
        project.id, 1, "https://example.com/phase-1"
    )
    approved = await as_client("tx2").approve_milestone(submission.id, release_tx_id="tx2")
    assert approved.release_tx_id == "tx2"
    db_session.refresh(project)
    assert [m.status for m in project.milestones] == [MilestoneStatus.APPROVED, MilestoneStatus.PENDING]

    dispute = await make_coordinator(user=client, independent_release=independent).file_dispute(
        project.id, 2, "Scope was never delivered", sign_on_chain=False
    )
    resolved = await make_coordinator(bridge=PresignedLedgerBridge("tx3"), **admin).resolve_dispute(
        dispute.id, "Refund the client", False, resolution_tx_id="tx3"
    )

    assert resolved.status == DisputeStatus.RESOLVED
    assert resolved.resolution_tx_id == "tx3"
    db_session.refresh(project)
    db_session.refresh(chosen)
    assert [m.status for m in project.milestones] == [MilestoneStatus.APPROVED, MilestoneStatus.REFUNDED]
    assert project.status == ProjectStatus.ACTIVE
    assert chosen.total_earned_stx == 100_000_000
