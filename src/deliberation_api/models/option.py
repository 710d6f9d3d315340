"""Option ORM models: the votable items of each stage.

Issues (stage 1) belong to a vote, approaches (stage 2) to an issue, and
plans (stage 3) to an approach. ``is_winner`` is maintained by the tally.
"""

import uuid

from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from deliberation_api.models.base import Base, TimestampMixin, UUIDMixin


class OptionMixin(UUIDMixin, TimestampMixin):
    """Columns shared by issues, approaches and plans."""

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    @declared_attr
    def vote_id(cls) -> Mapped[uuid.UUID]:  # noqa: N805
        return mapped_column(UUID(as_uuid=True), ForeignKey("votes.id", ondelete="CASCADE"), nullable=False)


class Issue(Base, OptionMixin):
    """Stage 1 option."""

    __tablename__ = "issues"

    __table_args__ = (Index("idx_issues_vote_id", "vote_id"),)


class Approach(Base, OptionMixin):
    """Stage 2 option, proposed under an issue."""

    __tablename__ = "approaches"

    issue_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("issues.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_approaches_vote_id", "vote_id"),
        Index("idx_approaches_issue_id", "issue_id"),
    )


class Plan(Base, OptionMixin):
    """Stage 3 option, proposed under an approach."""

    __tablename__ = "plans"

    approach_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("approaches.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_plans_vote_id", "vote_id"),
        Index("idx_plans_approach_id", "approach_id"),
    )


OPTION_MODELS: dict[int, type[Issue] | type[Approach] | type[Plan]] = {
    1: Issue,
    2: Approach,
    3: Plan,
}
