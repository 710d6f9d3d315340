"""Ballot ORM model (one voter's choice for one vote stage)."""

import uuid

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from deliberation_api.models.base import Base, TimestampMixin, UUIDMixin


class Ballot(Base, UUIDMixin, TimestampMixin):
    """A voter's recorded choice and quiz result for a vote stage.

    Unique per (user, vote, stage); resubmission upserts. Only the choice
    column matching ``stage`` is populated.
    """

    __tablename__ = "user_votes"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    vote_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("votes.id", ondelete="CASCADE"),
        nullable=False,
    )
    stage: Mapped[int] = mapped_column(Integer, nullable=False)
    issue_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("issues.id", ondelete="CASCADE"), nullable=True
    )
    approach_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("approaches.id", ondelete="CASCADE"), nullable=True
    )
    plan_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("plans.id", ondelete="CASCADE"), nullable=True
    )
    knowledge_score: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    @property
    def choice_id(self) -> uuid.UUID | None:
        """The chosen option for this ballot's stage."""
        return {1: self.issue_id, 2: self.approach_id, 3: self.plan_id}.get(self.stage)

    __table_args__ = (
        UniqueConstraint("user_id", "vote_id", "stage", name="uq_user_votes_user_vote_stage"),
        CheckConstraint("stage IN (1, 2, 3)", name="ck_user_votes_stage"),
        CheckConstraint("knowledge_score >= 0", name="ck_user_votes_knowledge_score"),
        CheckConstraint(
            "(stage = 1 AND issue_id IS NOT NULL AND approach_id IS NULL AND plan_id IS NULL)"
            " OR (stage = 2 AND approach_id IS NOT NULL AND issue_id IS NULL AND plan_id IS NULL)"
            " OR (stage = 3 AND plan_id IS NOT NULL AND issue_id IS NULL AND approach_id IS NULL)",
            name="ck_user_votes_single_choice",
        ),
        Index("idx_user_votes_vote_stage", "vote_id", "stage"),
    )
