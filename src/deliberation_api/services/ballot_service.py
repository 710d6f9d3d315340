"""Ballot service — validate, score, and upsert a voter's ballot for a stage.

Raw quiz correctness is stored with the ballot; knowledge weighting is
applied later, at tally time.
"""

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import Insert, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from deliberation_api.core.config import get_settings
from deliberation_api.core.database import store_guard
from deliberation_api.lib.staged_voting import (
    IncompleteQuiz,
    IneligibleOption,
    Stage,
    StageNotActive,
    VoterNotEligible,
    active_stage,
    missing_answers,
    score_answers,
)
from deliberation_api.models.ballot import Ballot
from deliberation_api.models.user import User
from deliberation_api.models.vote import VoteStatus
from deliberation_api.services.option_service import load_quiz, options_for_stage
from deliberation_api.services.vote_service import is_voter_eligible, require_vote


def _upsert_statement(session: AsyncSession, values: dict) -> Insert:
    dialect = session.get_bind().dialect.name
    insert = sqlite_insert if dialect == "sqlite" else pg_insert
    stmt = insert(Ballot).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=["user_id", "vote_id", "stage"],
        set_={
            "issue_id": stmt.excluded.issue_id,
            "approach_id": stmt.excluded.approach_id,
            "plan_id": stmt.excluded.plan_id,
            "knowledge_score": stmt.excluded.knowledge_score,
            "updated_at": func.now(),
        },
    )


async def submit_ballot(
    session: AsyncSession,
    user: User,
    vote_id: uuid.UUID,
    stage: Stage | int,
    option_id: uuid.UUID,
    answers: Mapping[uuid.UUID | str, str | None],
    *,
    now: datetime | None = None,
    lenient: bool | None = None,
) -> Ballot:
    """Record the user's choice for a stage, replacing any earlier ballot.

    Checks run in a fixed order and nothing is written unless all pass.

    Args:
        session: Async database session.
        user: The voter.
        vote_id: Target vote.
        stage: Stage the ballot is cast in.
        option_id: Chosen issue, approach or plan.
        answers: Answer text keyed by knowledge question id.
        now: Reference time, defaults to the current UTC time.
        lenient: Override for the lenient quiz option match setting.

    Returns:
        The stored ballot.

    Raises:
        VoteNotFound: If the vote does not exist.
        StageNotActive: If the vote is not open or the stage is not active.
        VoterNotEligible: If the user shares no population with the vote.
        IneligibleOption: If the option is not offered in this stage.
        IncompleteQuiz: If a question for the option is unanswered.
        StoreUnavailable: If the database cannot be reached.
    """
    stage = Stage(stage)
    current = now or datetime.now(UTC)
    if lenient is None:
        lenient = get_settings().quiz_lenient_option_match

    async with store_guard():
        vote = await require_vote(session, vote_id)
        if vote.status != VoteStatus.OPEN:
            msg = f"Vote {vote_id} is not open for voting."
            raise StageNotActive(msg)

        if not await is_voter_eligible(session, user, vote_id):
            msg = "You are not eligible to vote in this vote."
            raise VoterNotEligible(msg)

        if active_stage(vote, current) is not stage:
            msg = f"Stage {stage.value} is not currently active."
            raise StageNotActive(msg)

        options = await options_for_stage(session, vote_id, stage)
        if option_id not in {option.id for option in options}:
            msg = f"Option {option_id} is not available in stage {stage.value}."
            raise IneligibleOption(msg)

        questions = await load_quiz(session, stage, option_id)
        submitted = {str(question_id): answer for question_id, answer in answers.items()}
        missing = missing_answers(questions, submitted)
        if missing:
            msg = f"All {len(questions)} knowledge questions must be answered."
            raise IncompleteQuiz(msg, missing)

        score = score_answers(questions, submitted, lenient_option_match=lenient)

        values = {
            "id": uuid.uuid4(),
            "user_id": user.id,
            "vote_id": vote_id,
            "stage": stage.value,
            "issue_id": None,
            "approach_id": None,
            "plan_id": None,
            "knowledge_score": score,
        }
        values[stage.choice_column] = option_id
        await session.execute(_upsert_statement(session, values))
        await session.commit()

        result = await session.execute(
            select(Ballot)
            .where(Ballot.user_id == user.id, Ballot.vote_id == vote_id, Ballot.stage == stage.value)
            .execution_options(populate_existing=True)
        )
        ballot = result.scalar_one()

    logger.info(
        "Ballot recorded: vote={} stage={} user={} score={}/{}",
        vote_id,
        stage.value,
        user.id,
        score,
        len(questions),
    )
    return ballot


async def get_ballot(
    session: AsyncSession,
    user_id: uuid.UUID,
    vote_id: uuid.UUID,
    stage: Stage | int,
) -> Ballot | None:
    """Return the user's current ballot for a vote stage, if any."""
    result = await session.execute(
        select(Ballot)
        .where(Ballot.user_id == user_id, Ballot.vote_id == vote_id, Ballot.stage == Stage(stage).value)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
