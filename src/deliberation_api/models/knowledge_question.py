"""Basic knowledge question (BKQ) ORM model."""

import uuid

from sqlalchemy import CheckConstraint, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from deliberation_api.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class KnowledgeQuestion(Base, UUIDMixin, TimestampMixin):
    """A quiz item attached to an issue, approach or plan.

    ``correct_answer`` is stored as text in one of several legacy shapes; see
    ``lib.staged_voting.answer_key`` for how it is interpreted.
    """

    __tablename__ = "basic_knowledge_questions"

    related_type: Mapped[str] = mapped_column(String(20), nullable=False)
    related_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    correct_answer: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("related_type IN ('issue', 'approach', 'plan')", name="ck_bkq_related_type"),
        Index("idx_bkq_related", "related_type", "related_id"),
    )
