"""Population (eligibility group) ORM models and association tables."""

import uuid

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from deliberation_api.models.base import Base, TimestampMixin, UUIDMixin


class Population(Base, UUIDMixin, TimestampMixin):
    """A named group of voters."""

    __tablename__ = "populations"

    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class VotePopulation(Base):
    """Assignment of a population to a vote."""

    __tablename__ = "vote_populations"

    vote_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("votes.id", ondelete="CASCADE"), primary_key=True
    )
    population_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("populations.id", ondelete="CASCADE"), primary_key=True
    )


class UserPopulation(Base):
    """Membership of a user in a population."""

    __tablename__ = "user_populations"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    population_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("populations.id", ondelete="CASCADE"), primary_key=True
    )
