"""Pydantic v2 schemas for stage option endpoints."""

import uuid

from pydantic import BaseModel, Field


class KnowledgeQuestionPublic(BaseModel):
    """A knowledge question as shown to voters (the answer key is never exposed)."""

    id: uuid.UUID
    question: str
    choices: list[str] = Field(default_factory=list)


class OptionResponse(BaseModel):
    """A votable option with its quiz."""

    id: uuid.UUID
    title: str
    description: str | None = None
    is_winner: bool = False
    questions: list[KnowledgeQuestionPublic] = Field(default_factory=list)


class StageOptionsResponse(BaseModel):
    """Options a voter may choose from in one stage."""

    vote_id: uuid.UUID
    stage: int
    options: list[OptionResponse] = Field(default_factory=list)
