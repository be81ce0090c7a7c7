"""User schemas."""
from datetime import datetime

from pydantic import Field

from milestone_escrow.models.user import UserRole

from .common import CamelModel


class UserCreate(CamelModel):
    stx_address: str = Field(..., min_length=20, max_length=255)
    username: str | None = Field(default=None, max_length=100)
    role: UserRole


class UserRead(CamelModel):
    id: int
    stx_address: str
    username: str | None
    role: UserRole
    is_active: bool
    total_earned_stx: int
    total_earned_sbtc: int
    created_at: datetime
