"""Ballot API endpoints.

POST /votes/{id}/stages/{stage}/ballot — submit or replace the current user's ballot
GET /votes/{id}/stages/{stage}/ballot — the current user's ballot
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.ext.asyncio import AsyncSession

from deliberation_api.core.dependencies import get_async_session, get_current_user
from deliberation_api.models.user import User
from deliberation_api.schemas.ballot import BallotResponse, BallotSubmitRequest
from deliberation_api.services import ballot_service

ballots_router = APIRouter(prefix="/votes", tags=["ballots"])


@ballots_router.post("/{vote_id}/stages/{stage}/ballot", response_model=BallotResponse)
async def submit_ballot(
    vote_id: uuid.UUID,
    stage: Annotated[int, Path(ge=1, le=3, description="Stage number")],
    request: BallotSubmitRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> BallotResponse:
    """Cast a ballot for the active stage. Resubmitting replaces the earlier ballot."""
    ballot = await ballot_service.submit_ballot(
        session,
        current_user,
        vote_id,
        stage,
        request.option_id,
        request.answers,
    )
    return BallotResponse.model_validate(ballot)


@ballots_router.get("/{vote_id}/stages/{stage}/ballot", response_model=BallotResponse)
async def get_my_ballot(
    vote_id: uuid.UUID,
    stage: Annotated[int, Path(ge=1, le=3, description="Stage number")],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> BallotResponse:
    """Get the current user's ballot for a stage."""
    ballot = await ballot_service.get_ballot(session, current_user.id, vote_id, stage)
    if ballot is None:
        raise HTTPException(status_code=404, detail="Ballot not found.")
    return BallotResponse.model_validate(ballot)
