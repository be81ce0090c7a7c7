"""Proposal model."""
from enum import Enum as PyEnum

from sqlalchemy import ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, value_enum


class ProposalStatus(str, PyEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class Proposal(Base):
    """A freelancer's bid on an open project."""

    __tablename__ = "proposals"
    __table_args__ = (
        Index("ix_proposal_project_status", "project_id", "status"),
        Index("ix_proposal_freelancer", "freelancer_id"),
    )

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False)
    freelancer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    cover_letter: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ProposalStatus] = mapped_column(
        value_enum(ProposalStatus, "proposal_status"), default=ProposalStatus.PENDING, nullable=False
    )
