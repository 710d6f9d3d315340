"""Pydantic v2 schemas for tally runs, results, and the auto-tally sweep."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class KnowledgeBreakdown(BaseModel):
    """Ballot counts by number of correctly answered questions."""

    bkq0: int = 0
    bkq1: int = 0
    bkq2: int = 0
    bkq3: int = 0


class TallyRow(BaseModel):
    """One option's aggregate in a tally run."""

    choice_id: uuid.UUID
    name: str = ""
    total_votes: int
    weighted_votes: float
    knowledge_breakdown: KnowledgeBreakdown
    is_winner: bool = False


class TallyResponse(BaseModel):
    """Result rows of one tally run, ranked winner first."""

    vote_id: uuid.UUID
    stage: int
    tally_run: int
    winner_id: uuid.UUID | None = None
    results: list[TallyRow] = Field(default_factory=list)


class SweepItem(BaseModel):
    """Outcome of tallying one vote stage during a sweep."""

    vote_id: uuid.UUID
    stage: int
    success: bool
    tally_run: int | None = None
    winner_id: uuid.UUID | None = None
    error: str | None = None


class SweepResponse(BaseModel):
    """Report of one auto-tally sweep."""

    timestamp: datetime
    processed: int
    results: list[SweepItem] = Field(default_factory=list)
    closed_votes: list[uuid.UUID] = Field(default_factory=list)
