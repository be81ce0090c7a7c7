from decimal import Decimal

import pytest

from milestone_escrow.models.project import TokenType
from milestone_escrow.models.user import UserRole
from milestone_escrow.services import projects as project_service
from milestone_escrow.services.amounts import budget_matches, format_amount, from_micro, to_micro
from milestone_escrow.utils.errors import ValidationError

from conftest import project_payload


def test_to_micro_uses_token_precision():
    assert to_micro("1.5", TokenType.STX) == 1_500_000
    assert to_micro(Decimal("0.00000001"), TokenType.SBTC) == 1


def test_to_micro_floors_extra_digits():
    assert to_micro("0.0000019", TokenType.STX) == 1
    assert to_micro(0.1, TokenType.STX) == 100_000


@pytest.mark.parametrize("value", ["-1", "abc", "NaN"])
def test_to_micro_rejects_invalid_amounts(value):
    with pytest.raises(ValidationError):
        to_micro(value, TokenType.STX)


@pytest.mark.parametrize(
    ("amount", "token"),
    [
        ("0.000001", TokenType.STX),
        ("123.456789", TokenType.STX),
        ("250", TokenType.STX),
        ("0.00000001", TokenType.SBTC),
        ("1.23456789", TokenType.SBTC),
        ("21", TokenType.SBTC),
    ],
)
def test_amount_at_token_precision_survives_micro_conversion(amount, token):
    assert from_micro(to_micro(amount, token), token) == Decimal(amount)


def test_format_amount_renders_token_symbol():
    assert from_micro(2_500_000, TokenType.STX) == Decimal("2.500000")
    assert format_amount(150_000_000, TokenType.SBTC) == "1.50000000 sBTC"


def test_project_budget_is_sum_of_milestone_micro_units(db_session, make_user):
    client = make_user(UserRole.CLIENT)
    project = project_service.create_project(
        db_session, project_payload(amounts=("1.25", "2")), client=client, actor="test"
    )
    assert project.milestone_1_amount == 1_250_000
    assert project.milestone_2_amount == 2_000_000
    assert project.total_budget == 3_250_000
    assert project.milestone_3_amount == 0
    assert budget_matches(project)


def test_declared_budget_must_match_milestones(db_session, make_user):
    client = make_user(UserRole.CLIENT)
    with pytest.raises(ValidationError):
        project_service.create_project(
            db_session,
            project_payload(amounts=("10", "20"), total_budget=Decimal("40")),
            client=client,
            actor="test",
        )


def test_declared_budget_tolerates_flooring(db_session, make_user):
    client = make_user(UserRole.CLIENT)
    project = project_service.create_project(
        db_session,
        project_payload(amounts=("0.3333339", "0.3333339"), total_budget=Decimal("0.6666678")),
        client=client,
        actor="test",
    )
    assert project.total_budget == 666_666


def test_milestone_below_one_micro_unit_is_rejected(db_session, make_user):
    client = make_user(UserRole.CLIENT)
    with pytest.raises(ValidationError):
        project_service.create_project(
            db_session, project_payload(amounts=("0.0000001",)), client=client, actor="test"
        )
