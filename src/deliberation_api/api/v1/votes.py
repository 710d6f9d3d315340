"""Vote API endpoints.

GET /votes — votes visible to the current user
GET /votes/{id} — vote detail with the active stage
GET /votes/{id}/stage — stage activity
POST /votes/{id}/status — admin status transition
GET /votes/{id}/stages/{stage}/options — votable options with their quizzes
"""

import uuid
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from deliberation_api.core.dependencies import get_async_session, get_current_user, require_role
from deliberation_api.models.user import User
from deliberation_api.schemas.option import StageOptionsResponse
from deliberation_api.schemas.vote import (
    StageStatusResponse,
    VoteDetailResponse,
    VoteStatusUpdateRequest,
    VoteSummary,
)
from deliberation_api.services import option_service, vote_service

votes_router = APIRouter(prefix="/votes", tags=["votes"])


@votes_router.get("", response_model=list[VoteSummary])
async def list_votes(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    current_user: Annotated[User, Depends(get_current_user)],
    status: str | None = Query(default=None, description="Filter by status"),
) -> list[VoteSummary]:
    """List votes the current user can take part in. Admins see all votes."""
    votes = await vote_service.eligible_votes_for_user(session, current_user, status=status)
    now = datetime.now(UTC)
    return [vote_service.build_vote_summary(vote, now) for vote in votes]


@votes_router.get("/{vote_id}", response_model=VoteDetailResponse)
async def get_vote(
    vote_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> VoteDetailResponse:
    """Get vote detail by ID."""
    vote = await vote_service.require_visible_vote(session, current_user, vote_id)
    return vote_service.build_detail_response(vote)


@votes_router.get("/{vote_id}/stage", response_model=StageStatusResponse)
async def get_stage_status(
    vote_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> StageStatusResponse:
    """Report the stage open for ballots right now, if any."""
    await vote_service.require_visible_vote(session, current_user, vote_id)
    return await vote_service.get_stage_status(session, vote_id)


@votes_router.post("/{vote_id}/status", response_model=VoteDetailResponse)
async def update_vote_status(
    vote_id: uuid.UUID,
    request: VoteStatusUpdateRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    _current_user: Annotated[User, Depends(require_role("admin"))],
) -> VoteDetailResponse:
    """Move a vote through its lifecycle. Admin-only."""
    vote = await vote_service.change_status(session, vote_id, request.status, outcome=request.outcome)
    return vote_service.build_detail_response(vote)


@votes_router.get("/{vote_id}/stages/{stage}/options", response_model=StageOptionsResponse)
async def list_stage_options(
    vote_id: uuid.UUID,
    stage: Annotated[int, Path(ge=1, le=3, description="Stage number")],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> StageOptionsResponse:
    """List the options of a stage. Empty until the previous stage has a winner."""
    await vote_service.require_visible_vote(session, current_user, vote_id)
    return await option_service.build_stage_options_response(session, vote_id, stage)
