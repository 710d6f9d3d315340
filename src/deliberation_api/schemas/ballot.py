"""Pydantic v2 schemas for ballot submission."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class BallotSubmitRequest(BaseModel):
    """Request body for submitting (or replacing) a ballot."""

    option_id: uuid.UUID
    answers: dict[uuid.UUID, str] = Field(
        default_factory=dict,
        description="Submitted answer text keyed by knowledge question id",
    )


class BallotResponse(BaseModel):
    """A stored ballot. Submitted answers are not echoed back."""

    model_config = {"from_attributes": True}

    id: uuid.UUID
    vote_id: uuid.UUID
    stage: int
    choice_id: uuid.UUID | None
    knowledge_score: int
    updated_at: datetime | None = None
