"""Pydantic v2 schemas for vote and stage endpoints."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class VoteSummary(BaseModel):
    """Vote summary for list endpoints."""

    model_config = {"from_attributes": True}

    id: uuid.UUID
    title: str
    status: str
    active_stage: int | None = None


class VoteDetailResponse(VoteSummary):
    """Full vote detail."""

    description: str | None = None
    stage1_start: datetime | None = None
    stage1_end: datetime | None = None
    stage2_start: datetime | None = None
    stage2_end: datetime | None = None
    stage3_start: datetime | None = None
    stage3_end: datetime | None = None
    outcome: str | None = None
    outcome_detail: str | None = None
    created_at: datetime
    updated_at: datetime


class StageStatusResponse(BaseModel):
    """Temporal and causal state of each stage of a vote."""

    vote_id: uuid.UUID
    status: str
    active_stage: int | None = Field(description="Stage open for ballots now, or null")
    votable: bool = Field(description="Active stage exists and has at least one votable option")
    checked_at: datetime


class VoteStatusUpdateRequest(BaseModel):
    """Request body for an administrative status transition."""

    status: Literal["draft", "open", "closed"]
    outcome: str | None = Field(default=None, description="Outcome text recorded when closing")
