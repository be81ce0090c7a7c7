"""Milestone submission model."""
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, _utcnow, value_enum


class SubmissionStatus(str, PyEnum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISPUTED = "disputed"


class MilestoneSubmission(Base):
    """A deliverable handed in by the freelancer for one milestone.

    Several rows may exist per milestone; the latest by ``submitted_at``
    (highest id on ties) is authoritative.
    """

    __tablename__ = "milestone_submissions"
    __table_args__ = (
        Index("ix_submission_latest", "project_id", "milestone_num", "submitted_at", "id"),
    )

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False)
    milestone_num: Mapped[int] = mapped_column(Integer, nullable=False)
    freelancer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    deliverable_url: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[SubmissionStatus] = mapped_column(
        value_enum(SubmissionStatus, "submission_status"),
        default=SubmissionStatus.SUBMITTED,
        nullable=False,
    )
    completion_tx_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    release_tx_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
