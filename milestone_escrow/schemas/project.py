"""Project schemas."""
from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_validator

from milestone_escrow.models.project import MAX_MILESTONES, MilestoneStatus, ProjectStatus, TokenType

from .common import CamelModel
from .dispute import DisputeRead
from .milestone import SubmissionRead


class MilestoneIn(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    # Decimal token amount, e.g. 100.5 STX.
    amount: Decimal = Field(gt=Decimal("0"))


class ProjectCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1, max_length=100)
    subcategory: str | None = Field(default=None, max_length=100)
    token_type: TokenType = TokenType.STX
    milestones: list[MilestoneIn] = Field(..., min_length=1, max_length=MAX_MILESTONES)
    # Optional declared total in decimal token units, checked against the milestone sum.
    total_budget: Decimal | None = None

    @field_validator("title", "category")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class ProjectRead(CamelModel):
    id: int
    client_id: int
    freelancer_id: int | None
    title: str
    description: str
    category: str
    subcategory: str | None
    token_type: TokenType
    num_milestones: int
    total_budget: int
    status: ProjectStatus
    on_chain_id: int | None
    escrow_tx_id: str | None
    refund_tx_id: str | None
    created_at: datetime
    updated_at: datetime


class MilestoneView(CamelModel):
    num: int
    title: str
    description: str | None
    amount: int
    amount_display: str
    status: MilestoneStatus
    display_status: str
    latest_submission: SubmissionRead | None = None


class ProgressRead(CamelModel):
    total: int
    approved: int
    refunded: int
    released_amount: int
    percent: int


class ProjectDetail(ProjectRead):
    milestones: list[MilestoneView]
    progress: ProgressRead
    disputes: list[DisputeRead] = Field(default_factory=list)


class ProjectActivate(CamelModel):
    escrow_tx_id: str = Field(..., min_length=1, max_length=100)
    on_chain_id: int = Field(..., ge=0)


class RefundRequest(CamelModel):
    tx_id: str = Field(..., min_length=1, max_length=100)
    emergency: bool = False
