"""Escrow lifecycle coordinator.

Every caller intent runs through here. Off-chain transitions commit under
the project's lock. Transitions backed by a contract call follow a
two-phase protocol:

1. under the lock, validate against the store and build the contract call
   (or notice the transition was already applied and return it);
2. release the lock and wait on the ledger bridge, with no timeout;
3. once confirmed, re-acquire the lock and commit the transition.

A failure in step 3 can no longer be undone on chain. It is recorded as a
reconciliation marker and surfaced as ``OrphanedOnChain``.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from milestone_escrow.models.dispute import Dispute
from milestone_escrow.models.project import Project
from milestone_escrow.models.proposal import Proposal
from milestone_escrow.models.reconciliation import ReconciliationMarker
from milestone_escrow.models.submission import MilestoneSubmission
from milestone_escrow.models.user import User, UserRole
from milestone_escrow.schemas.project import ProjectCreate
from milestone_escrow.services import disputes as dispute_service
from milestone_escrow.services import milestones as milestone_service
from milestone_escrow.services import ownership as ownership_service
from milestone_escrow.services import projects as project_service
from milestone_escrow.services import proposals as proposal_service
from milestone_escrow.services import reconciliation
from milestone_escrow.services import recovery
from milestone_escrow.services.ledger import (
    Cancelled,
    Confirmed,
    ContractCall,
    EscrowContract,
    Failed,
    LedgerBridge,
    PresignedLedgerBridge,
)
from milestone_escrow.services.locks import ProjectLockRegistry
from milestone_escrow.utils.errors import (
    Conflict,
    Forbidden,
    InvalidState,
    LedgerCallFailed,
    OrphanedOnChain,
    SigningCancelled,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Intents that can be replayed from a reconciliation marker.
CHAIN_INTENTS = frozenset(
    {
        "activate_project",
        "approve_milestone",
        "file_dispute",
        "resolve_dispute",
        "force_release",
        "force_refund",
        "request_refund",
        "propose_ownership",
        "accept_ownership",
    }
)
TX_HINT_KEYS = ("escrow_tx_id", "release_tx_id", "resolution_tx_id", "tx_id")


class TwoPhaseState(str, Enum):
    IDLE = "idle"
    AWAITING_SIGNATURE = "awaiting_signature"
    CONFIRMED = "confirmed"
    COMMITTED = "committed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    ORPHANED_ON_CHAIN = "orphaned_on_chain"


@dataclass(frozen=True)
class AlreadyApplied:
    """Returned by a prepare step when the transition is already in place."""

    result: Any


class EscrowLifecycleCoordinator:
    """Drives one caller's intents; build one per request."""

    def __init__(
        self,
        db: Session,
        *,
        bridge: LedgerBridge,
        locks: ProjectLockRegistry,
        contract: EscrowContract,
        independent_release: bool = False,
        actor: str = "system",
        user: User | None = None,
        is_admin: bool = False,
        replaying_marker_id: int | None = None,
    ) -> None:
        self.db = db
        self.bridge = bridge
        self.locks = locks
        self.contract = contract
        self.independent_release = independent_release
        self.actor = actor
        self.user = user
        self.is_admin = is_admin
        self.replaying_marker_id = replaying_marker_id
        self.state = TwoPhaseState.IDLE

    # --- Authorization ---------------------------------------------------

    def _require_user(self) -> User:
        if self.user is None:
            raise Forbidden("This action requires a user-bound API key.")
        return self.user

    def _require_admin(self) -> None:
        if not self.is_admin:
            raise Forbidden("This action requires admin scope.")

    def _require_client(self, project: Project) -> User:
        user = self._require_user()
        if user.id != project.client_id:
            raise Forbidden("Only the project's client can perform this action.", details={"project_id": project.id})
        return user

    # --- Plumbing ----------------------------------------------------------

    def _lock(self, project_id: int | None):
        if project_id is None:
            return nullcontext()
        return self.locks.hold(project_id)

    async def _commit_offchain(self, project_id: int | None, fn: Callable[[], T]) -> T:
        async with self._lock(project_id):
            try:
                result = fn()
                self.db.commit()
            except (IntegrityError, StaleDataError) as exc:
                self.db.rollback()
                logger.info("Concurrent update rejected", extra={"project_id": project_id, "error": str(exc)})
                raise Conflict(
                    "The record was changed concurrently; reload and retry.",
                    details={"project_id": project_id},
                ) from exc
            except Exception:
                self.db.rollback()
                raise
        return result

    async def _two_phase(
        self,
        *,
        intent: str,
        project_id: int | None,
        entity: str,
        entity_id: int,
        params: dict[str, Any],
        prepare: Callable[[], ContractCall | AlreadyApplied],
        commit: Callable[[Confirmed], T],
    ) -> T:
        self.state = TwoPhaseState.IDLE
        async with self._lock(project_id):
            try:
                prepared = prepare()
            finally:
                # Nothing was written; release the read transaction before the wait.
                self.db.rollback()
        if isinstance(prepared, AlreadyApplied):
            self.state = TwoPhaseState.COMMITTED
            logger.info("Transition already applied", extra={"intent": intent, "entity_id": entity_id})
            return prepared.result

        call = prepared
        self.state = TwoPhaseState.AWAITING_SIGNATURE
        logger.info(
            "Awaiting ledger confirmation",
            extra={"intent": intent, "entity_id": entity_id, "contract_call": call.describe()},
        )
        try:
            outcome = await self.bridge.execute(call)
        except asyncio.CancelledError:
            self.state = TwoPhaseState.CANCELLED
            logger.info("Signing abandoned", extra={"intent": intent, "entity_id": entity_id})
            raise
        except Exception as exc:
            self.state = TwoPhaseState.FAILED
            logger.warning("Ledger bridge raised", extra={"intent": intent, "error": str(exc)})
            raise LedgerCallFailed("Ledger call failed.", details={"intent": intent, "error": str(exc)}) from exc

        if isinstance(outcome, Cancelled):
            self.state = TwoPhaseState.CANCELLED
            raise SigningCancelled(
                "Signing was cancelled; nothing was changed.",
                details={"intent": intent, "reason": outcome.reason},
            )
        if isinstance(outcome, Failed):
            self.state = TwoPhaseState.FAILED
            raise LedgerCallFailed(
                "Ledger call failed; nothing was changed.",
                details={"intent": intent, "error": outcome.error},
            )

        self.state = TwoPhaseState.CONFIRMED
        async with self._lock(project_id):
            try:
                result = commit(outcome)
                self.db.commit()
            except Exception as exc:
                self.db.rollback()
                self.state = TwoPhaseState.ORPHANED_ON_CHAIN
                marker_id = self._record_orphan(
                    intent=intent,
                    entity=entity,
                    entity_id=entity_id,
                    project_id=project_id,
                    outcome=outcome,
                    params=params,
                    error=exc,
                )
                raise OrphanedOnChain(
                    "The transaction was confirmed on chain but could not be recorded.",
                    tx_id=outcome.tx_id,
                    intent=intent,
                    marker_id=marker_id,
                    details={"entity": entity, "entity_id": entity_id},
                ) from exc

        self.state = TwoPhaseState.COMMITTED
        logger.info("Transition committed", extra={"intent": intent, "entity_id": entity_id, "tx_id": outcome.tx_id})
        return result

    def _record_orphan(
        self,
        *,
        intent: str,
        entity: str,
        entity_id: int,
        project_id: int | None,
        outcome: Confirmed,
        params: dict[str, Any],
        error: Exception,
    ) -> int | None:
        payload = dict(params)
        if self.user is not None:
            payload["acting_user_id"] = self.user.id
        if outcome.value is not None:
            payload["ledger_value"] = outcome.value
        context = {
            "intent": intent,
            "entity": entity,
            "entity_id": entity_id,
            "project_id": project_id,
            "tx_id": outcome.tx_id,
            "params": payload,
            "error": repr(error),
        }
        logger.error("Chain transaction confirmed but off-chain commit failed", extra=context, exc_info=error)

        try:
            if self.replaying_marker_id is not None:
                marker = reconciliation.get_marker(self.db, self.replaying_marker_id)
                marker.error = repr(error)[:2000]
            else:
                marker = reconciliation.record_marker(
                    self.db,
                    intent=intent,
                    entity=entity,
                    entity_id=entity_id,
                    project_id=project_id,
                    tx_id=outcome.tx_id,
                    params=payload,
                    error=repr(error),
                )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.critical("Could not persist reconciliation marker", extra=context, exc_info=True)
            return None
        return marker.id

    # --- Projects ----------------------------------------------------------

    async def create_project(self, payload: ProjectCreate) -> Project:
        client = self._require_user()
        if client.role != UserRole.CLIENT:
            raise Forbidden("Only clients can post projects.")
        return await self._commit_offchain(
            None, lambda: project_service.create_project(self.db, payload, client=client, actor=self.actor)
        )

    async def cancel_project(self, project_id: int) -> Project:
        def apply() -> Project:
            project = project_service.get_project(self.db, project_id)
            if not self.is_admin:
                self._require_client(project)
            return project_service.cancel_project(self.db, project, actor=self.actor)

        return await self._commit_offchain(project_id, apply)

    async def activate_project(
        self,
        project_id: int,
        *,
        on_chain_id: int | None = None,
        escrow_tx_id: str | None = None,
    ) -> Project:
        def prepare() -> ContractCall | AlreadyApplied:
            project = project_service.get_project(self.db, project_id)
            self._require_client(project)
            if milestone_service.is_already_active(project, escrow_tx_id):
                return AlreadyApplied(project)
            proposal = milestone_service.check_can_activate(self.db, project)
            freelancer = self.db.get(User, proposal.freelancer_id)
            if freelancer is None:
                raise ValidationError("Accepted freelancer no longer exists.")
            return self.contract.create_project(
                project.token_type, freelancer.stx_address, project.milestone_amounts()
            )

        def commit(outcome: Confirmed) -> Project:
            index = on_chain_id if on_chain_id is not None else outcome.value
            if index is None:
                raise ValidationError("On-chain project index is unknown.")
            project = project_service.get_project(self.db, project_id)
            return milestone_service.activate(
                self.db,
                project,
                escrow_tx_id=outcome.tx_id,
                on_chain_id=int(index),
                independent_release=self.independent_release,
                actor=self.actor,
            )

        return await self._two_phase(
            intent="activate_project",
            project_id=project_id,
            entity="Project",
            entity_id=project_id,
            params={"project_id": project_id, "on_chain_id": on_chain_id, "escrow_tx_id": escrow_tx_id},
            prepare=prepare,
            commit=commit,
        )

    async def request_refund(self, project_id: int, *, emergency: bool = False, tx_id: str | None = None) -> Project:
        def prepare() -> ContractCall | AlreadyApplied:
            project = project_service.get_project(self.db, project_id)
            self._require_client(project)
            if tx_id is not None and project.refund_tx_id == tx_id:
                return AlreadyApplied(project)
            recovery.ensure_client_refund_allowed(self.db, project, emergency=emergency)
            if emergency:
                return self.contract.emergency_refund(project.token_type, project.on_chain_id)
            return self.contract.request_full_refund(project.token_type, project.on_chain_id)

        def commit(outcome: Confirmed) -> Project:
            project = project_service.get_project(self.db, project_id)
            recovery.ensure_client_refund_allowed(self.db, project, emergency=emergency)
            return recovery.force_refund(
                self.db,
                project,
                tx_id=outcome.tx_id,
                actor=self.actor,
                action="PROJECT_REFUNDED_BY_CLIENT",
            )

        return await self._two_phase(
            intent="request_refund",
            project_id=project_id,
            entity="Project",
            entity_id=project_id,
            params={"project_id": project_id, "emergency": emergency, "tx_id": tx_id},
            prepare=prepare,
            commit=commit,
        )

    # --- Proposals ---------------------------------------------------------

    async def submit_proposal(self, project_id: int, cover_letter: str) -> Proposal:
        def apply() -> Proposal:
            freelancer = self._require_user()
            if freelancer.role != UserRole.FREELANCER:
                raise Forbidden("Only freelancers can submit proposals.")
            project = project_service.get_project(self.db, project_id)
            if project.client_id == freelancer.id:
                raise Forbidden("Clients cannot bid on their own projects.")
            return proposal_service.submit(
                self.db, project, freelancer_id=freelancer.id, cover_letter=cover_letter, actor=self.actor
            )

        return await self._commit_offchain(project_id, apply)

    async def _proposal_action(self, proposal_id: int, action: Callable[[Proposal, Project], Proposal]) -> Proposal:
        # Resolve the project id first so the right lock is taken.
        project_id = proposal_service.get_proposal(self.db, proposal_id).project_id

        def apply() -> Proposal:
            proposal = proposal_service.get_proposal(self.db, proposal_id)
            project = project_service.get_project(self.db, proposal.project_id)
            return action(proposal, project)

        return await self._commit_offchain(project_id, apply)

    async def accept_proposal(self, proposal_id: int) -> Proposal:
        def action(proposal: Proposal, project: Project) -> Proposal:
            self._require_client(project)
            return proposal_service.accept(self.db, proposal, project, actor=self.actor)

        return await self._proposal_action(proposal_id, action)

    async def reject_proposal(self, proposal_id: int) -> Proposal:
        def action(proposal: Proposal, project: Project) -> Proposal:
            self._require_client(project)
            return proposal_service.reject(self.db, proposal, actor=self.actor)

        return await self._proposal_action(proposal_id, action)

    async def withdraw_proposal(self, proposal_id: int) -> Proposal:
        def action(proposal: Proposal, project: Project) -> Proposal:
            user = self._require_user()
            if proposal.freelancer_id != user.id:
                raise Forbidden("Only the proposing freelancer can withdraw.")
            return proposal_service.withdraw(self.db, proposal, actor=self.actor)

        return await self._proposal_action(proposal_id, action)

    # --- Milestones --------------------------------------------------------

    async def submit_milestone(
        self,
        project_id: int,
        milestone_num: int,
        deliverable_url: str,
        description: str | None = None,
        completion_tx_id: str | None = None,
    ) -> MilestoneSubmission:
        def apply() -> MilestoneSubmission:
            freelancer = self._require_user()
            project = project_service.get_project(self.db, project_id)
            return milestone_service.submit(
                self.db,
                project,
                milestone_num=milestone_num,
                freelancer_id=freelancer.id,
                deliverable_url=deliverable_url,
                description=description,
                completion_tx_id=completion_tx_id,
                actor=self.actor,
            )

        return await self._commit_offchain(project_id, apply)

    async def approve_milestone(self, submission_id: int, *, release_tx_id: str | None = None) -> MilestoneSubmission:
        project_id = milestone_service.get_submission(self.db, submission_id).project_id

        def prepare() -> ContractCall | AlreadyApplied:
            submission = milestone_service.get_submission(self.db, submission_id)
            project = project_service.get_project(self.db, submission.project_id)
            self._require_client(project)
            if milestone_service.is_already_approved(submission, release_tx_id):
                return AlreadyApplied(submission)
            milestone_service.check_can_approve(self.db, submission, project)
            return self.contract.release_milestone(project.token_type, project.on_chain_id, submission.milestone_num)

        def commit(outcome: Confirmed) -> MilestoneSubmission:
            submission = milestone_service.get_submission(self.db, submission_id)
            project = project_service.get_project(self.db, submission.project_id)
            return milestone_service.approve(
                self.db, submission, project, release_tx_id=outcome.tx_id, actor=self.actor
            )

        return await self._two_phase(
            intent="approve_milestone",
            project_id=project_id,
            entity="MilestoneSubmission",
            entity_id=submission_id,
            params={"submission_id": submission_id, "release_tx_id": release_tx_id},
            prepare=prepare,
            commit=commit,
        )

    async def reject_milestone(self, submission_id: int) -> MilestoneSubmission:
        project_id = milestone_service.get_submission(self.db, submission_id).project_id

        def apply() -> MilestoneSubmission:
            submission = milestone_service.get_submission(self.db, submission_id)
            project = project_service.get_project(self.db, submission.project_id)
            self._require_client(project)
            return milestone_service.reject(self.db, submission, project, actor=self.actor)

        return await self._commit_offchain(project_id, apply)

    # --- Disputes ----------------------------------------------------------

    async def file_dispute(
        self,
        project_id: int,
        milestone_num: int,
        reason: str,
        evidence_url: str | None = None,
        *,
        sign_on_chain: bool = True,
        dispute_tx_id: str | None = None,
    ) -> Dispute:
        filer = self._require_user()

        def apply(tx_id: str | None) -> Dispute:
            project = project_service.get_project(self.db, project_id)
            return dispute_service.file(
                self.db,
                project,
                milestone_num=milestone_num,
                filed_by=filer.id,
                reason=reason,
                evidence_url=evidence_url,
                dispute_tx_id=tx_id,
                actor=self.actor,
            )

        if not sign_on_chain:
            return await self._commit_offchain(project_id, lambda: apply(dispute_tx_id))

        def prepare() -> ContractCall:
            project = project_service.get_project(self.db, project_id)
            dispute_service.check_can_file(self.db, project, milestone_num, filer.id)
            return self.contract.file_dispute(project.on_chain_id, milestone_num)

        return await self._two_phase(
            intent="file_dispute",
            project_id=project_id,
            entity="Project",
            entity_id=project_id,
            params={
                "project_id": project_id,
                "milestone_num": milestone_num,
                "reason": reason,
                "evidence_url": evidence_url,
                "sign_on_chain": True,
                "dispute_tx_id": dispute_tx_id,
            },
            prepare=prepare,
            commit=lambda outcome: apply(outcome.tx_id),
        )

    async def resolve_dispute(
        self,
        dispute_id: int,
        resolution: str,
        favor_freelancer: bool,
        *,
        resolution_tx_id: str | None = None,
    ) -> Dispute:
        self._require_admin()
        project_id = dispute_service.get_dispute(self.db, dispute_id).project_id

        def prepare() -> ContractCall | AlreadyApplied:
            dispute = dispute_service.get_dispute(self.db, dispute_id)
            if dispute_service.is_already_resolved(dispute, resolution_tx_id):
                return AlreadyApplied(dispute)
            project = project_service.get_project(self.db, dispute.project_id)
            dispute_service.check_can_resolve(dispute, project, favor_freelancer=favor_freelancer)
            return self.contract.admin_resolve_dispute(
                project.token_type, project.on_chain_id, dispute.milestone_num, favor_freelancer
            )

        def commit(outcome: Confirmed) -> Dispute:
            dispute = dispute_service.get_dispute(self.db, dispute_id)
            project = project_service.get_project(self.db, dispute.project_id)
            return dispute_service.resolve(
                self.db,
                dispute,
                project,
                resolution=resolution,
                resolution_tx_id=outcome.tx_id,
                favor_freelancer=favor_freelancer,
                resolved_by=self.actor,
            )

        return await self._two_phase(
            intent="resolve_dispute",
            project_id=project_id,
            entity="Dispute",
            entity_id=dispute_id,
            params={
                "dispute_id": dispute_id,
                "resolution": resolution,
                "favor_freelancer": favor_freelancer,
                "resolution_tx_id": resolution_tx_id,
            },
            prepare=prepare,
            commit=commit,
        )

    async def reset_dispute(self, dispute_id: int, note: str, marker: str) -> Dispute:
        self._require_admin()
        project_id = dispute_service.get_dispute(self.db, dispute_id).project_id

        def apply() -> Dispute:
            dispute = dispute_service.get_dispute(self.db, dispute_id)
            project = project_service.get_project(self.db, dispute.project_id)
            return dispute_service.reset(
                self.db, dispute, project, note=note, marker=marker, resolved_by=self.actor
            )

        return await self._commit_offchain(project_id, apply)

    # --- Admin recovery ----------------------------------------------------

    async def force_release(self, project_id: int, milestone_num: int, *, tx_id: str | None = None) -> Project:
        self._require_admin()

        def prepare() -> ContractCall | AlreadyApplied:
            project = project_service.get_project(self.db, project_id)
            if not recovery.check_can_force_release(project, milestone_num):
                return AlreadyApplied(project)
            return self.contract.admin_force_release(project.token_type, project.on_chain_id, milestone_num)

        def commit(outcome: Confirmed) -> Project:
            project = project_service.get_project(self.db, project_id)
            return recovery.force_release(
                self.db, project, milestone_num=milestone_num, tx_id=outcome.tx_id, actor=self.actor
            )

        return await self._two_phase(
            intent="force_release",
            project_id=project_id,
            entity="Project",
            entity_id=project_id,
            params={"project_id": project_id, "milestone_num": milestone_num, "tx_id": tx_id},
            prepare=prepare,
            commit=commit,
        )

    async def force_refund(self, project_id: int, *, tx_id: str | None = None) -> Project:
        self._require_admin()

        def prepare() -> ContractCall | AlreadyApplied:
            project = project_service.get_project(self.db, project_id)
            if not recovery.check_can_force_refund(project):
                return AlreadyApplied(project)
            return self.contract.admin_force_refund(project.token_type, project.on_chain_id)

        def commit(outcome: Confirmed) -> Project:
            project = project_service.get_project(self.db, project_id)
            return recovery.force_refund(self.db, project, tx_id=outcome.tx_id, actor=self.actor)

        return await self._two_phase(
            intent="force_refund",
            project_id=project_id,
            entity="Project",
            entity_id=project_id,
            params={"project_id": project_id, "tx_id": tx_id},
            prepare=prepare,
            commit=commit,
        )

    # --- Contract ownership ------------------------------------------------

    async def propose_ownership(self, new_owner: str, *, tx_id: str | None = None) -> str:
        self._require_admin()

        return await self._two_phase(
            intent="propose_ownership",
            project_id=None,
            entity="EscrowContract",
            entity_id=0,
            params={"new_owner": new_owner, "tx_id": tx_id},
            prepare=lambda: self.contract.propose_ownership(new_owner),
            commit=lambda outcome: ownership_service.record_ownership_proposed(
                self.db, new_owner=new_owner, tx_id=outcome.tx_id, actor=self.actor
            ),
        )

    async def accept_ownership(self, *, tx_id: str | None = None) -> str:
        self._require_admin()

        def commit(outcome: Confirmed) -> str:
            ownership_service.record_ownership_accepted(self.db, tx_id=outcome.tx_id, actor=self.actor)
            return outcome.tx_id

        return await self._two_phase(
            intent="accept_ownership",
            project_id=None,
            entity="EscrowContract",
            entity_id=0,
            params={"tx_id": tx_id},
            prepare=self.contract.accept_ownership,
            commit=commit,
        )

    # --- Reconciliation ----------------------------------------------------

    async def replay_marker(self, marker_id: int) -> ReconciliationMarker:
        """Re-run a marker's intent with its recorded transaction id."""

        self._require_admin()
        marker = reconciliation.get_marker(self.db, marker_id)
        reconciliation.require_pending(marker)
        if marker.intent not in CHAIN_INTENTS:
            raise ValidationError("Marker intent cannot be replayed.", details={"intent": marker.intent})

        params = dict(marker.params_json or {})
        acting_user_id = params.pop("acting_user_id", None)
        ledger_value = params.pop("ledger_value", None)
        # With the recorded id as the hint, a marker that was already applied replays as a no-op.
        for key in TX_HINT_KEYS:
            if key in params and params[key] is None:
                params[key] = marker.tx_id
        user = self.db.get(User, acting_user_id) if acting_user_id is not None else None
        if acting_user_id is not None and user is None:
            raise InvalidState("The marker's acting user no longer exists.", details={"marker_id": marker_id})

        replay = EscrowLifecycleCoordinator(
            self.db,
            bridge=PresignedLedgerBridge(marker.tx_id, value=ledger_value),
            locks=self.locks,
            contract=self.contract,
            independent_release=self.independent_release,
            actor=f"{self.actor}:replay",
            user=user,
            is_admin=True,
            replaying_marker_id=marker.id,
        )
        logger.info("Replaying reconciliation marker", extra={"marker_id": marker.id, "intent": marker.intent})
        await getattr(replay, marker.intent)(**params)

        return await self._commit_offchain(
            marker.project_id,
            lambda: reconciliation.mark_replayed(
                self.db, reconciliation.get_marker(self.db, marker_id), actor=self.actor
            ),
        )

    async def dismiss_marker(self, marker_id: int) -> ReconciliationMarker:
        self._require_admin()
        return await self._commit_offchain(
            None,
            lambda: reconciliation.dismiss(self.db, reconciliation.get_marker(self.db, marker_id), actor=self.actor),
        )


__all__ = [
    "AlreadyApplied",
    "CHAIN_INTENTS",
    "EscrowLifecycleCoordinator",
    "TwoPhaseState",
]
