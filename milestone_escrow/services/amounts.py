"""Token amount conversions between decimal display values and micro-units."""
from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Iterable

from milestone_escrow.models.project import Project, TokenType
from milestone_escrow.utils.errors import ValidationError

TOKEN_DECIMALS: dict[TokenType, int] = {
    TokenType.STX: 6,
    TokenType.SBTC: 8,
}


def decimals_for(token: TokenType) -> int:
    return TOKEN_DECIMALS[TokenType(token)]


def scale_for(token: TokenType) -> int:
    return 10 ** decimals_for(token)


def to_decimal(value: Any) -> Decimal:
    """
    Convert a money amount to ``Decimal``.
    Accepts Decimal, int, float, str. Raises ValidationError when invalid.
    """
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            # str() avoids binary float artefacts
            d = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError) as e:
            raise ValidationError(f"Invalid token amount: {value!r}") from e
    if not d.is_finite():
        raise ValidationError(f"Invalid token amount: {value!r}")
    return d


def to_micro(amount: Any, token: TokenType) -> int:
    """Return ``floor(amount * 10**decimals)`` as an integer micro-unit count."""

    d = to_decimal(amount)
    if d < 0:
        raise ValidationError("Token amounts cannot be negative.", details={"amount": str(d)})
    return int((d * scale_for(token)).to_integral_value(rounding=ROUND_FLOOR))


def from_micro(micro: int, token: TokenType) -> Decimal:
    """Return the decimal token amount for ``micro`` at the token's precision."""

    places = Decimal(1).scaleb(-decimals_for(token))
    return (Decimal(int(micro)) / scale_for(token)).quantize(places)


def format_amount(micro: int, token: TokenType) -> str:
    return f"{from_micro(micro, token)} {TokenType(token).value}"


def sum_amounts(amounts: Iterable[int | None]) -> int:
    """Sum milestone amounts, treating empty slots as zero."""

    return sum(amount for amount in amounts if amount)


def budget_matches(project: Project) -> bool:
    """Milestone amounts add up to the declared budget within one micro-unit per milestone."""

    total = sum_amounts(m.amount for m in project.milestones)
    return abs(total - project.total_budget) <= project.num_milestones


__all__ = [
    "TOKEN_DECIMALS",
    "budget_matches",
    "decimals_for",
    "format_amount",
    "from_micro",
    "scale_for",
    "sum_amounts",
    "to_decimal",
    "to_micro",
]
