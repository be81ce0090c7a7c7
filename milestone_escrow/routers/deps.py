"""Shared router dependencies: coordinator construction and ledger access."""
from __future__ import annotations

from typing import Any, Callable

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from milestone_escrow.config import get_settings
from milestone_escrow.db import get_db
from milestone_escrow.models.api_key import ApiKey, ApiScope
from milestone_escrow.security import optional_user, require_api_key
from milestone_escrow.services.coordinator import EscrowLifecycleCoordinator
from milestone_escrow.services.ledger import EscrowContract, LedgerBridge, LedgerReader, PresignedLedgerBridge
from milestone_escrow.services.locks import ProjectLockRegistry
from milestone_escrow.services.stacks_node import StacksNodeClient
from milestone_escrow.utils.audit import actor_from_api_key

CoordinatorFactory = Callable[..., EscrowLifecycleCoordinator]


def get_bridge_factory() -> Callable[..., LedgerBridge]:
    """Over HTTP the wallet signs in the browser; requests carry the resulting tx id."""

    return PresignedLedgerBridge


def get_ledger_reader() -> LedgerReader:
    return StacksNodeClient.from_settings(get_settings())


def get_lock_registry(request: Request) -> ProjectLockRegistry:
    return request.app.state.project_locks


def get_coordinator_factory(
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_api_key),
    locks: ProjectLockRegistry = Depends(get_lock_registry),
    bridge_factory: Callable[..., LedgerBridge] = Depends(get_bridge_factory),
) -> CoordinatorFactory:
    settings = get_settings()
    user = optional_user(api_key, db)

    def build(tx_id: str | None = None, *, value: Any = None) -> EscrowLifecycleCoordinator:
        return EscrowLifecycleCoordinator(
            db,
            bridge=bridge_factory(tx_id, value=value),
            locks=locks,
            contract=EscrowContract.from_settings(settings),
            independent_release=settings.INDEPENDENT_MILESTONE_RELEASE,
            actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
            user=user,
            is_admin=api_key.scope == ApiScope.admin,
        )

    return build


__all__ = [
    "CoordinatorFactory",
    "get_bridge_factory",
    "get_coordinator_factory",
    "get_ledger_reader",
    "get_lock_registry",
]
