"""User model."""
from enum import Enum as PyEnum

from sqlalchemy import BigInteger, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, value_enum


class UserRole(str, PyEnum):
    """Marketplace role of a wallet holder."""

    CLIENT = "client"
    FREELANCER = "freelancer"


class User(Base):
    """A wallet-identified marketplace participant."""

    __tablename__ = "users"

    stx_address: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    role: Mapped[UserRole] = mapped_column(value_enum(UserRole, "user_role"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Lifetime earnings in token micro-units, one counter per settlement token.
    total_earned_stx: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_earned_sbtc: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
