"""Vote ORM model.

A vote runs three sequential stages (issues, approaches, plans), each bounded
by an optional start/end timestamp.
"""

import enum
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from deliberation_api.models.base import Base, TimestampMixin, UUIDMixin


class VoteStatus(enum.StrEnum):
    """Vote lifecycle states."""

    DRAFT = "draft"
    OPEN = "open"
    CLOSED = "closed"


class Vote(Base, UUIDMixin, TimestampMixin):
    """A staged deliberation vote."""

    __tablename__ = "votes"

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default=VoteStatus.DRAFT.value)
    stage1_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    stage1_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    stage2_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    stage2_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    stage3_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    stage3_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    outcome: Mapped[str | None] = mapped_column(Text, nullable=True)
    outcome_detail: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('draft', 'open', 'closed')", name="ck_votes_status"),
        CheckConstraint(
            "stage1_start IS NULL OR stage1_end IS NULL OR stage1_start <= stage1_end",
            name="ck_votes_stage1_window",
        ),
        CheckConstraint(
            "stage2_start IS NULL OR stage2_end IS NULL OR stage2_start <= stage2_end",
            name="ck_votes_stage2_window",
        ),
        CheckConstraint(
            "stage3_start IS NULL OR stage3_end IS NULL OR stage3_start <= stage3_end",
            name="ck_votes_stage3_window",
        ),
        Index("idx_votes_status", "status"),
    )
