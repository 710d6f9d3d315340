"""Vote service — lookup, voter eligibility, and the vote lifecycle.

A voter may take part in a vote when their populations intersect the vote's
populations. Opening a vote is gated by a readiness check; closing happens
manually or from the auto-tally sweep once every stage has elapsed.
"""

import uuid
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import Exists, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from deliberation_api.core.config import get_settings
from deliberation_api.lib.staged_voting import (
    InvalidStatusTransition,
    VoteNotFound,
    VoteNotReady,
    VoterNotEligible,
    active_stage,
    is_well_formed,
)
from deliberation_api.models.knowledge_question import KnowledgeQuestion
from deliberation_api.models.option import Issue
from deliberation_api.models.population import UserPopulation, VotePopulation
from deliberation_api.models.user import User
from deliberation_api.models.vote import Vote, VoteStatus
from deliberation_api.schemas.vote import StageStatusResponse, VoteDetailResponse, VoteSummary
from deliberation_api.services.option_service import is_stage_votable

ALLOWED_TRANSITIONS: dict[VoteStatus, frozenset[VoteStatus]] = {
    VoteStatus.DRAFT: frozenset({VoteStatus.OPEN, VoteStatus.CLOSED}),
    VoteStatus.OPEN: frozenset({VoteStatus.CLOSED}),
    VoteStatus.CLOSED: frozenset({VoteStatus.OPEN}),
}


async def require_vote(session: AsyncSession, vote_id: uuid.UUID) -> Vote:
    """Get a vote by ID.

    Raises:
        VoteNotFound: If no vote has this ID.
    """
    vote = await session.get(Vote, vote_id)
    if vote is None:
        msg = f"Vote {vote_id} not found."
        raise VoteNotFound(msg)
    return vote


async def require_visible_vote(session: AsyncSession, user: User, vote_id: uuid.UUID) -> Vote:
    """Get a vote the user is allowed to see.

    Drafts are hidden from voters, and voters only see votes of their populations.

    Raises:
        VoteNotFound: If the vote does not exist or is a draft hidden from the user.
        VoterNotEligible: If the user shares no population with the vote.
    """
    vote = await require_vote(session, vote_id)
    if user.role == "admin":
        return vote
    if vote.status == VoteStatus.DRAFT:
        msg = f"Vote {vote_id} not found."
        raise VoteNotFound(msg)
    if not await is_voter_eligible(session, user, vote_id):
        msg = "You are not eligible to take part in this vote."
        raise VoterNotEligible(msg)
    return vote


def _shares_population(user_id: uuid.UUID) -> Exists:
    return exists().where(
        VotePopulation.vote_id == Vote.id,
        VotePopulation.population_id == UserPopulation.population_id,
        UserPopulation.user_id == user_id,
    )


async def is_voter_eligible(session: AsyncSession, user: User, vote_id: uuid.UUID) -> bool:
    """True when the user belongs to at least one of the vote's populations."""
    result = await session.execute(
        select(VotePopulation.vote_id)
        .join(UserPopulation, UserPopulation.population_id == VotePopulation.population_id)
        .where(VotePopulation.vote_id == vote_id, UserPopulation.user_id == user.id)
        .limit(1)
    )
    return result.first() is not None


async def eligible_votes_for_user(
    session: AsyncSession,
    user: User,
    *,
    status: str | None = None,
) -> list[Vote]:
    """List the votes a user can see.

    Admins see every vote. Voters see non-draft votes assigned to one of
    their populations.

    Args:
        session: Async database session.
        user: The current user.
        status: Optional status filter.

    Returns:
        Votes ordered newest first.
    """
    query = select(Vote)
    if user.role != "admin":
        query = query.where(Vote.status != VoteStatus.DRAFT.value, _shares_population(user.id))
    if status:
        query = query.where(Vote.status == status)
    result = await session.execute(query.order_by(Vote.created_at.desc(), Vote.id))
    return list(result.scalars().all())


async def check_open_requirements(session: AsyncSession, vote: Vote) -> list[str]:
    """Collect the reasons a vote cannot be opened. Empty means ready.

    Args:
        session: Async database session.
        vote: The vote to check.

    Returns:
        Human-readable problems, in a stable order.
    """
    settings = get_settings()
    problems: list[str] = []

    if vote.stage1_start is None:
        problems.append("Stage 1 start time is not set.")

    population = await session.execute(select(VotePopulation.population_id).where(VotePopulation.vote_id == vote.id))
    if population.first() is None:
        problems.append("At least one population must be assigned.")

    issues_result = await session.execute(
        select(Issue).where(Issue.vote_id == vote.id).order_by(Issue.created_at, Issue.id)
    )
    issues = list(issues_result.scalars().all())
    if len(issues) < settings.min_stage1_options:
        problems.append(f"At least {settings.min_stage1_options} Stage 1 issues are required (found {len(issues)}).")

    if issues:
        questions_result = await session.execute(
            select(KnowledgeQuestion).where(
                KnowledgeQuestion.related_type == "issue",
                KnowledgeQuestion.related_id.in_([issue.id for issue in issues]),
            )
        )
        well_formed: dict[uuid.UUID, int] = {issue.id: 0 for issue in issues}
        for question in questions_result.scalars().all():
            if is_well_formed(question.question, question.options, question.correct_answer):
                well_formed[question.related_id] += 1
        for issue in issues:
            count = well_formed[issue.id]
            if count < settings.min_questions_per_option:
                problems.append(
                    f"Issue '{issue.title}' needs at least {settings.min_questions_per_option} "
                    f"well-formed knowledge questions (found {count})."
                )

    return problems


async def change_status(
    session: AsyncSession,
    vote_id: uuid.UUID,
    new_status: str,
    *,
    outcome: str | None = None,
) -> Vote:
    """Move a vote to a new lifecycle status.

    Opening (including an administrative reopen) runs the readiness check.
    Setting the current status again is a no-op.

    Args:
        session: Async database session.
        vote_id: The vote to update.
        new_status: Target status.
        outcome: Optional outcome text recorded when closing.

    Returns:
        The updated vote.

    Raises:
        VoteNotFound: If the vote does not exist.
        InvalidStatusTransition: If the lifecycle does not allow the change.
        VoteNotReady: If the vote fails the opening requirements.
    """
    vote = await require_vote(session, vote_id)
    try:
        target = VoteStatus(new_status)
    except ValueError as exc:
        msg = f"Unknown vote status '{new_status}'."
        raise InvalidStatusTransition(msg) from exc
    current = VoteStatus(vote.status)

    if target == current:
        return vote
    if target not in ALLOWED_TRANSITIONS[current]:
        msg = f"Cannot move vote from '{current}' to '{target}'."
        raise InvalidStatusTransition(msg)

    if target == VoteStatus.OPEN:
        problems = await check_open_requirements(session, vote)
        if problems:
            msg = "Vote is not ready to open: " + " ".join(problems)
            raise VoteNotReady(msg, problems)

    vote.status = target.value
    if target == VoteStatus.CLOSED and outcome is not None:
        vote.outcome = outcome
    await session.commit()
    await session.refresh(vote)
    logger.info("Vote {} status changed {} -> {}", vote.id, current, target)
    return vote


def _stage_number(vote: Vote, now: datetime | None) -> int | None:
    stage = active_stage(vote, now) if vote.status == VoteStatus.OPEN else None
    return stage.value if stage is not None else None


def build_vote_summary(vote: Vote, now: datetime | None = None) -> VoteSummary:
    """Build a list item with the stage active at ``now``."""
    return VoteSummary(id=vote.id, title=vote.title, status=vote.status, active_stage=_stage_number(vote, now))


def build_detail_response(vote: Vote, now: datetime | None = None) -> VoteDetailResponse:
    """Build the full vote detail with the stage active at ``now``.

    Args:
        vote: Vote ORM instance.
        now: Reference time, defaults to the current UTC time.

    Returns:
        VoteDetailResponse.
    """
    return VoteDetailResponse(
        id=vote.id,
        title=vote.title,
        status=vote.status,
        active_stage=_stage_number(vote, now),
        description=vote.description,
        stage1_start=vote.stage1_start,
        stage1_end=vote.stage1_end,
        stage2_start=vote.stage2_start,
        stage2_end=vote.stage2_end,
        stage3_start=vote.stage3_start,
        stage3_end=vote.stage3_end,
        outcome=vote.outcome,
        outcome_detail=vote.outcome_detail,
        created_at=vote.created_at,
        updated_at=vote.updated_at,
    )


async def get_stage_status(
    session: AsyncSession,
    vote_id: uuid.UUID,
    now: datetime | None = None,
) -> StageStatusResponse:
    """Report which stage is active and whether it can take ballots.

    Raises:
        VoteNotFound: If the vote does not exist.
    """
    vote = await require_vote(session, vote_id)
    checked_at = now or datetime.now(UTC)
    stage = _stage_number(vote, checked_at)
    votable = stage is not None and await is_stage_votable(session, vote, stage, checked_at)
    return StageStatusResponse(
        vote_id=vote.id,
        status=vote.status,
        active_stage=stage,
        votable=votable,
        checked_at=checked_at,
    )
