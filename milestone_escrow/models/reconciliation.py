"""Pending reconciliation markers for orphaned on-chain transactions."""
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, value_enum


class MarkerStatus(str, PyEnum):
    PENDING = "pending"
    REPLAYED = "replayed"
    DISMISSED = "dismissed"


class ReconciliationMarker(Base):
    """A confirmed chain transaction whose off-chain commit did not land."""

    __tablename__ = "reconciliation_markers"
    __table_args__ = (
        Index("ix_marker_status", "status"),
        Index("ix_marker_tx", "tx_id"),
    )

    intent: Mapped[str] = mapped_column(String(64), nullable=False)
    entity: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    project_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tx_id: Mapped[str] = mapped_column(String(100), nullable=False)
    params_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    error: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[MarkerStatus] = mapped_column(
        value_enum(MarkerStatus, "marker_status"), default=MarkerStatus.PENDING, nullable=False
    )
    resolved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
