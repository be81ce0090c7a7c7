"""Project model with its inline milestone slots."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum as PyEnum

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from milestone_escrow.utils.errors import InvalidState

from .base import Base, value_enum

MAX_MILESTONES = 4
MILESTONE_SLOTS = tuple(range(1, MAX_MILESTONES + 1))


class TokenType(str, PyEnum):
    """Settlement tokens accepted by the escrow contract."""

    STX = "STX"
    SBTC = "sBTC"


class ProjectStatus(str, PyEnum):
    OPEN = "open"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"
    REFUNDED = "refunded"


class MilestoneStatus(str, PyEnum):
    """Escrow status of a single milestone slot."""

    LOCKED = "locked"
    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REFUNDED = "refunded"


TERMINAL_MILESTONE_STATUSES = frozenset({MilestoneStatus.APPROVED, MilestoneStatus.REFUNDED})
TERMINAL_PROJECT_STATUSES = frozenset(
    {ProjectStatus.COMPLETED, ProjectStatus.CANCELLED, ProjectStatus.REFUNDED}
)


@dataclass(frozen=True)
class Milestone:
    """Read-only view over one milestone slot of a project."""

    num: int
    title: str
    description: str | None
    amount: int
    status: MilestoneStatus

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_MILESTONE_STATUSES


def _milestone_status_column() -> Mapped[MilestoneStatus]:
    return mapped_column(
        value_enum(MilestoneStatus, "milestone_status"),
        default=MilestoneStatus.LOCKED,
        nullable=False,
    )


class Project(Base):
    """A client contract split into one to four escrowed milestones.

    Amounts are integer micro-units of ``token_type``. Milestones live in
    fixed column slots; unused slots keep a null title and a zero amount.
    """

    __tablename__ = "projects"
    __table_args__ = (
        CheckConstraint("num_milestones >= 1 AND num_milestones <= 4", name="ck_project_num_milestones"),
        CheckConstraint("total_budget >= 0", name="ck_project_budget_non_negative"),
        Index("ix_project_status", "status"),
        Index("ix_project_client", "client_id"),
        Index("ix_project_freelancer", "freelancer_id"),
    )

    client_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    freelancer_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)
    token_type: Mapped[TokenType] = mapped_column(value_enum(TokenType, "token_type"), nullable=False)
    num_milestones: Mapped[int] = mapped_column(Integer, nullable=False)

    milestone_1_title: Mapped[str] = mapped_column(String(200), nullable=False)
    milestone_1_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    milestone_1_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    milestone_1_status: Mapped[MilestoneStatus] = _milestone_status_column()

    milestone_2_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    milestone_2_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    milestone_2_amount: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    milestone_2_status: Mapped[MilestoneStatus] = _milestone_status_column()

    milestone_3_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    milestone_3_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    milestone_3_amount: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    milestone_3_status: Mapped[MilestoneStatus] = _milestone_status_column()

    milestone_4_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    milestone_4_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    milestone_4_amount: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    milestone_4_status: Mapped[MilestoneStatus] = _milestone_status_column()

    total_budget: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[ProjectStatus] = mapped_column(
        value_enum(ProjectStatus, "project_status"), default=ProjectStatus.OPEN, nullable=False
    )
    on_chain_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    escrow_tx_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    refund_tx_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def has_slot(self, num: int) -> bool:
        return 1 <= num <= self.num_milestones

    def milestone(self, num: int) -> Milestone:
        """Return the milestone in slot ``num``; raise ``KeyError`` when unused."""

        if not self.has_slot(num):
            raise KeyError(num)
        return Milestone(
            num=num,
            title=getattr(self, f"milestone_{num}_title"),
            description=getattr(self, f"milestone_{num}_description"),
            amount=getattr(self, f"milestone_{num}_amount") or 0,
            status=getattr(self, f"milestone_{num}_status"),
        )

    @property
    def milestones(self) -> list[Milestone]:
        return [self.milestone(num) for num in range(1, self.num_milestones + 1)]

    def set_milestone_status(self, num: int, status: MilestoneStatus) -> None:
        """Write a slot status; approved and refunded slots never change again."""

        if not self.has_slot(num):
            raise KeyError(num)
        current = getattr(self, f"milestone_{num}_status")
        if current in TERMINAL_MILESTONE_STATUSES and current != status:
            raise InvalidState(
                "Milestone has already been settled.",
                details={"project_id": self.id, "milestone_num": num, "status": current.value},
            )
        setattr(self, f"milestone_{num}_status", status)

    def milestone_amounts(self) -> list[int]:
        """Amounts for all four slots, zero-padded."""

        return [getattr(self, f"milestone_{num}_amount") or 0 for num in MILESTONE_SLOTS]
