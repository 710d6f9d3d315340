"""Tally API endpoints.

POST /votes/{id}/stages/{stage}/tally — run a tally (admin)
GET /votes/{id}/stages/{stage}/results — latest tally run
POST /tallies/auto — run the auto-tally sweep (admin, for cron)
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.ext.asyncio import AsyncSession

from deliberation_api.core.dependencies import get_async_session, get_current_user, require_role
from deliberation_api.models.user import User
from deliberation_api.schemas.tally import SweepResponse, TallyResponse
from deliberation_api.services import tally_service, vote_service

tallies_router = APIRouter(tags=["tallies"])


@tallies_router.post("/votes/{vote_id}/stages/{stage}/tally", response_model=TallyResponse)
async def run_tally(
    vote_id: uuid.UUID,
    stage: Annotated[int, Path(ge=1, le=3, description="Stage number")],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    _current_user: Annotated[User, Depends(require_role("admin"))],
) -> TallyResponse:
    """Tally a stage into a new result snapshot and flag its winner. Admin-only."""
    return await tally_service.run_tally(session, vote_id, stage)


@tallies_router.get("/votes/{vote_id}/stages/{stage}/results", response_model=TallyResponse)
async def get_results(
    vote_id: uuid.UUID,
    stage: Annotated[int, Path(ge=1, le=3, description="Stage number")],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> TallyResponse:
    """Get the most recent tally run of a stage."""
    await vote_service.require_visible_vote(session, current_user, vote_id)
    results = await tally_service.latest_results(session, vote_id, stage)
    if results is None:
        raise HTTPException(status_code=404, detail="Stage has not been tallied yet.")
    return results


@tallies_router.post("/tallies/auto", response_model=SweepResponse)
async def run_auto_tally(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    _current_user: Annotated[User, Depends(require_role("admin"))],
) -> SweepResponse:
    """Tally every stage that ended within the auto-tally window. Admin-only."""
    return await tally_service.auto_tally_sweep(session)
