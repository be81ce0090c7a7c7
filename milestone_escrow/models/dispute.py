"""Dispute model."""
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, value_enum


class DisputeStatus(str, PyEnum):
    OPEN = "open"
    RESOLVED = "resolved"
    RESET = "reset"


class Dispute(Base):
    """A contest over one milestone, arbitrated by an admin."""

    __tablename__ = "disputes"
    __table_args__ = (
        Index("ix_dispute_project_milestone", "project_id", "milestone_num", "created_at", "id"),
        # At most one open dispute per (project, milestone).
        Index(
            "uq_dispute_open_per_milestone",
            "project_id",
            "milestone_num",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False)
    milestone_num: Mapped[int] = mapped_column(Integer, nullable=False)
    filed_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[DisputeStatus] = mapped_column(
        value_enum(DisputeStatus, "dispute_status"), default=DisputeStatus.OPEN, nullable=False
    )
    resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    favor_freelancer: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    dispute_tx_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    resolution_tx_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
