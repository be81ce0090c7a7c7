"""Domain error taxonomy and standardized error payloads."""
from __future__ import annotations

from typing import Any


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


class EscrowError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400
    default_code = "ESCROW_ERROR"
    retryable = True

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        return error_response(self.code, self.message, self.details)


class ValidationError(EscrowError):
    """Malformed input, rejected before any state change."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class Forbidden(EscrowError):
    """The caller is not a party allowed to act on the entity."""

    status_code = 403
    default_code = "FORBIDDEN"
    retryable = False


class NotFound(EscrowError):
    status_code = 404
    default_code = "NOT_FOUND"
    retryable = False


class InvalidState(EscrowError):
    """An entity is not in the status the operation requires."""

    status_code = 409
    default_code = "INVALID_STATE"


class Conflict(EscrowError):
    """A uniqueness invariant would be violated."""

    status_code = 409
    default_code = "CONFLICT"


class Duplicate(Conflict):
    default_code = "DUPLICATE"


class Precondition(EscrowError):
    """A cross-entity requirement is unmet."""

    status_code = 412
    default_code = "PRECONDITION_FAILED"


class SigningCancelled(EscrowError):
    """The wallet holder aborted signing; nothing was written."""

    status_code = 409
    default_code = "SIGNING_CANCELLED"


class LedgerCallFailed(EscrowError):
    """The ledger bridge reported an error before confirmation."""

    status_code = 502
    default_code = "LEDGER_CALL_FAILED"


class OrphanedOnChain(EscrowError):
    """The chain call confirmed but the off-chain commit failed.

    Never retried automatically: a reconciliation marker holds the
    transaction id so an operator can replay the commit.
    """

    status_code = 500
    default_code = "ORPHANED_ON_CHAIN"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        tx_id: str,
        intent: str,
        marker_id: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        merged = {
            "tx_id": tx_id,
            "intent": intent,
            "marker_id": marker_id,
            "action": "Contact support with this transaction id. Do not retry the operation.",
        }
        merged.update(details or {})
        super().__init__(message, details=merged)
        self.tx_id = tx_id
        self.intent = intent
        self.marker_id = marker_id


__all__ = [
    "error_response",
    "EscrowError",
    "ValidationError",
    "Forbidden",
    "NotFound",
    "InvalidState",
    "Conflict",
    "Duplicate",
    "Precondition",
    "SigningCancelled",
    "LedgerCallFailed",
    "OrphanedOnChain",
]
