"""Ledger bridge: contract call descriptions and signing outcomes.

Signing happens in the wallet of whoever holds the key, so the bridge is an
async, cancellable collaborator that reports a tagged outcome instead of
invoking callbacks.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Protocol, Union

from milestone_escrow.config import Settings
from milestone_escrow.models.project import MAX_MILESTONES, TokenType
from milestone_escrow.utils.errors import ValidationError

PRINCIPAL_RE = re.compile(r"^S[MNPT][0-9A-HJKMNP-TV-Z]{26,40}(\.[a-zA-Z][a-zA-Z0-9-]{0,39})?$")


# --- Clarity argument values -------------------------------------------


@dataclass(frozen=True)
class UInt:
    value: int

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValidationError("Clarity uint arguments must be non-negative.")


@dataclass(frozen=True)
class Bool:
    value: bool


@dataclass(frozen=True)
class StandardPrincipal:
    address: str


@dataclass(frozen=True)
class ContractPrincipal:
    address: str
    name: str


ClarityArg = Union[UInt, Bool, StandardPrincipal, ContractPrincipal]


def _describe_arg(arg: ClarityArg) -> Any:
    if isinstance(arg, ContractPrincipal):
        return f"{arg.address}.{arg.name}"
    if isinstance(arg, StandardPrincipal):
        return arg.address
    return arg.value


@dataclass(frozen=True)
class ContractCall:
    contract_address: str
    contract_name: str
    function_name: str
    args: tuple[ClarityArg, ...] = field(default_factory=tuple)

    def describe(self) -> dict[str, Any]:
        """JSON-friendly summary used in logs and reconciliation markers."""

        return {
            "contract": f"{self.contract_address}.{self.contract_name}",
            "function": self.function_name,
            "args": [_describe_arg(arg) for arg in self.args],
        }


# --- Signing outcomes ----------------------------------------------------


@dataclass(frozen=True)
class Confirmed:
    tx_id: str
    # Optional value returned by the contract, e.g. the new on-chain project index.
    value: Any = None


@dataclass(frozen=True)
class Cancelled:
    reason: str | None = None


@dataclass(frozen=True)
class Failed:
    error: str


LedgerOutcome = Union[Confirmed, Cancelled, Failed]


class LedgerBridge(Protocol):
    async def execute(self, call: ContractCall) -> LedgerOutcome:
        """Issue ``call`` and wait, possibly indefinitely, for its outcome."""
        ...


class LedgerReader(Protocol):
    async def read_only(self, function_name: str) -> Any:
        """Evaluate a read-only contract function and return its decoded value."""
        ...


class PresignedLedgerBridge:
    """Bridge for transactions the caller's wallet has already broadcast.

    Over HTTP the browser signs first and sends the transaction id along,
    so confirmation is whatever id the request carried.
    """

    def __init__(self, tx_id: str | None, *, value: Any = None) -> None:
        self.tx_id = (tx_id or "").strip()
        self.value = value
        self.calls: list[ContractCall] = []

    async def execute(self, call: ContractCall) -> LedgerOutcome:
        self.calls.append(call)
        if not self.tx_id:
            return Failed(error=f"No signed transaction id supplied for {call.function_name}")
        return Confirmed(tx_id=self.tx_id, value=self.value)


def validate_principal(address: str) -> str:
    cleaned = (address or "").strip()
    if not PRINCIPAL_RE.match(cleaned):
        raise ValidationError("Invalid Stacks principal.", details={"principal": address})
    return cleaned


# --- Call builder --------------------------------------------------------


class EscrowContract:
    """Builds calls against the deployed multi-token escrow contract.

    sBTC variants take the token contract as a trailing trait argument.
    """

    def __init__(
        self,
        *,
        contract_address: str,
        contract_name: str,
        sbtc_address: str,
        sbtc_name: str,
    ) -> None:
        self.contract_address = contract_address
        self.contract_name = contract_name
        self.sbtc_trait = ContractPrincipal(sbtc_address, sbtc_name)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EscrowContract":
        return cls(
            contract_address=settings.ESCROW_CONTRACT_ADDRESS,
            contract_name=settings.ESCROW_CONTRACT_NAME,
            sbtc_address=settings.SBTC_CONTRACT_ADDRESS,
            sbtc_name=settings.SBTC_CONTRACT_NAME,
        )

    def _call(self, function_name: str, *args: ClarityArg) -> ContractCall:
        return ContractCall(self.contract_address, self.contract_name, function_name, tuple(args))

    def _token_call(self, base: str, token: TokenType, *args: ClarityArg) -> ContractCall:
        token = TokenType(token)
        suffix = "stx" if token is TokenType.STX else "sbtc"
        if token is TokenType.SBTC:
            args = (*args, self.sbtc_trait)
        return self._call(f"{base}-{suffix}", *args)

    def create_project(self, token: TokenType, freelancer_address: str, amounts: list[int]) -> ContractCall:
        if len(amounts) > MAX_MILESTONES:
            raise ValidationError("At most four milestone amounts are supported.")
        padded = list(amounts) + [0] * (MAX_MILESTONES - len(amounts))
        return self._token_call(
            "create-project",
            token,
            StandardPrincipal(validate_principal(freelancer_address)),
            *(UInt(amount) for amount in padded),
        )

    def release_milestone(self, token: TokenType, project_index: int, milestone_num: int) -> ContractCall:
        return self._token_call("release-milestone", token, UInt(project_index), UInt(milestone_num))

    def file_dispute(self, project_index: int, milestone_num: int) -> ContractCall:
        return self._call("file-dispute", UInt(project_index), UInt(milestone_num))

    def request_full_refund(self, token: TokenType, project_index: int) -> ContractCall:
        return self._token_call("request-full-refund", token, UInt(project_index))

    def emergency_refund(self, token: TokenType, project_index: int) -> ContractCall:
        return self._token_call("emergency-refund", token, UInt(project_index))

    def admin_resolve_dispute(
        self, token: TokenType, project_index: int, milestone_num: int, release_to_freelancer: bool
    ) -> ContractCall:
        return self._token_call(
            "admin-resolve-dispute",
            token,
            UInt(project_index),
            UInt(milestone_num),
            Bool(release_to_freelancer),
        )

    def admin_force_release(self, token: TokenType, project_index: int, milestone_num: int) -> ContractCall:
        return self._token_call("admin-force-release", token, UInt(project_index), UInt(milestone_num))

    def admin_force_refund(self, token: TokenType, project_index: int) -> ContractCall:
        return self._token_call("admin-force-refund", token, UInt(project_index))

    def propose_ownership(self, new_owner: str) -> ContractCall:
        return self._call("propose-ownership", StandardPrincipal(validate_principal(new_owner)))

    def accept_ownership(self) -> ContractCall:
        return self._call("accept-ownership")


__all__ = [
    "Bool",
    "Cancelled",
    "ClarityArg",
    "Confirmed",
    "ContractCall",
    "ContractPrincipal",
    "EscrowContract",
    "Failed",
    "LedgerBridge",
    "LedgerOutcome",
    "LedgerReader",
    "PresignedLedgerBridge",
    "StandardPrincipal",
    "UInt",
    "validate_principal",
]
