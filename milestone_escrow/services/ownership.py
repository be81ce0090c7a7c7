"""Two-step ownership transfer of the escrow contract.

Ownership is never stored locally; it is read back from the contract and
local state only keeps an audit trail of the admin's confirmed calls.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from milestone_escrow.services.ledger import LedgerReader, validate_principal
from milestone_escrow.utils.audit import log_audit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OwnershipTransferState:
    owner: str | None
    proposed_owner: str | None

    @property
    def transfer_pending(self) -> bool:
        return self.proposed_owner is not None and self.proposed_owner != self.owner


async def fetch_ownership_state(reader: LedgerReader) -> OwnershipTransferState:
    owner, proposed = await asyncio.gather(
        reader.read_only("get-contract-owner"),
        reader.read_only("get-proposed-owner"),
    )
    return OwnershipTransferState(owner=owner, proposed_owner=proposed)


def record_ownership_proposed(db: Session, *, new_owner: str, tx_id: str, actor: str) -> str:
    principal = validate_principal(new_owner)
    log_audit(
        db,
        actor=actor,
        action="OWNERSHIP_TRANSFER_PROPOSED",
        entity="EscrowContract",
        entity_id=None,
        data={"new_owner": principal, "tx_id": tx_id},
    )
    logger.warning("Contract ownership transfer proposed", extra={"new_owner": principal, "tx_id": tx_id})
    return principal


def record_ownership_accepted(db: Session, *, tx_id: str, actor: str) -> None:
    log_audit(
        db,
        actor=actor,
        action="OWNERSHIP_TRANSFER_ACCEPTED",
        entity="EscrowContract",
        entity_id=None,
        data={"tx_id": tx_id},
    )
    logger.warning("Contract ownership transfer accepted", extra={"tx_id": tx_id})


__all__ = [
    "OwnershipTransferState",
    "fetch_ownership_state",
    "record_ownership_accepted",
    "record_ownership_proposed",
]
