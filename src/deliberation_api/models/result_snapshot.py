"""Tally result snapshot ORM model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from deliberation_api.models.base import Base, UUIDMixin


class ResultSnapshot(Base, UUIDMixin):
    """One option's aggregate within one tally run (append-only)."""

    __tablename__ = "results"

    vote_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("votes.id", ondelete="CASCADE"),
        nullable=False,
    )
    stage: Mapped[int] = mapped_column(Integer, nullable=False)
    choice_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    tally_run: Mapped[int] = mapped_column(Integer, nullable=False)
    total_votes: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    weighted_votes: Mapped[float] = mapped_column(Float, nullable=False, server_default="0")
    bkq0_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    bkq1_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    bkq2_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    bkq3_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    is_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("vote_id", "stage", "choice_id", "tally_run", name="uq_results_run_choice"),
        Index("idx_results_vote_stage_run", "vote_id", "stage", "tally_run"),
    )
