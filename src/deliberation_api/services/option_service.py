"""Option service — which options are votable in each stage.

Stage 1 offers every issue of the vote. Stage 2 offers the approaches of the
winning issue and stage 3 the plans of the winning approach, so a later stage
only becomes votable once the previous stage has been tallied. Temporal
activity is resolved separately by ``lib.staged_voting.stages``; the two are
composed explicitly in ``is_stage_votable``.
"""

import uuid
from collections import defaultdict
from collections.abc import Iterable
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from deliberation_api.lib.staged_voting import (
    NoWinnerYet,
    QuizQuestion,
    Stage,
    active_stage,
    stage_has_closed,
)
from deliberation_api.models.knowledge_question import KnowledgeQuestion
from deliberation_api.models.option import OPTION_MODELS, Approach, Issue, Plan
from deliberation_api.models.vote import Vote, VoteStatus
from deliberation_api.schemas.option import KnowledgeQuestionPublic, OptionResponse, StageOptionsResponse

Option = Issue | Approach | Plan


async def get_winning_issue(session: AsyncSession, vote_id: uuid.UUID) -> Issue | None:
    """Return the issue flagged as the stage 1 winner, if tallied."""
    result = await session.execute(
        select(Issue)
        .where(Issue.vote_id == vote_id, Issue.is_winner.is_(True))
        .order_by(Issue.created_at, Issue.id)
        .limit(1)
    )
    return result.scalars().first()


async def get_winning_approach(session: AsyncSession, vote_id: uuid.UUID) -> Approach | None:
    """Return the winning approach under the winning issue, if both are tallied."""
    issue = await get_winning_issue(session, vote_id)
    if issue is None:
        return None
    result = await session.execute(
        select(Approach)
        .where(
            Approach.vote_id == vote_id,
            Approach.issue_id == issue.id,
            Approach.is_winner.is_(True),
        )
        .order_by(Approach.created_at, Approach.id)
        .limit(1)
    )
    return result.scalars().first()


async def get_winning_plan(session: AsyncSession, vote_id: uuid.UUID) -> Plan | None:
    """Return the winning plan under the winning approach."""
    approach = await get_winning_approach(session, vote_id)
    if approach is None:
        return None
    result = await session.execute(
        select(Plan)
        .where(Plan.vote_id == vote_id, Plan.approach_id == approach.id, Plan.is_winner.is_(True))
        .order_by(Plan.created_at, Plan.id)
        .limit(1)
    )
    return result.scalars().first()


async def get_stage_winner(
    session: AsyncSession,
    vote_id: uuid.UUID,
    stage: Stage | int,
    *,
    required: bool = False,
) -> Option | None:
    """Return the winning option of ``stage`` along the winning chain.

    Raises:
        NoWinnerYet: If ``required`` is set and the stage has no winner.
    """
    stage = Stage(stage)
    lookup = {
        Stage.ISSUES: get_winning_issue,
        Stage.APPROACHES: get_winning_approach,
        Stage.PLANS: get_winning_plan,
    }[stage]
    winner = await lookup(session, vote_id)
    if winner is None and required:
        msg = f"Stage {stage.value} of vote {vote_id} has not produced a winner yet."
        raise NoWinnerYet(msg)
    return winner


async def options_for_stage(session: AsyncSession, vote_id: uuid.UUID, stage: Stage | int) -> list[Option]:
    """Return the options voters may choose from in ``stage``.

    Returns an empty list, not an error, while the previous stage has no winner.
    """
    stage = Stage(stage)
    if stage is Stage.ISSUES:
        result = await session.execute(
            select(Issue).where(Issue.vote_id == vote_id).order_by(Issue.created_at, Issue.id)
        )
        return list(result.scalars().all())

    if stage is Stage.APPROACHES:
        issue = await get_winning_issue(session, vote_id)
        if issue is None:
            return []
        result = await session.execute(
            select(Approach)
            .where(Approach.vote_id == vote_id, Approach.issue_id == issue.id)
            .order_by(Approach.created_at, Approach.id)
        )
        return list(result.scalars().all())

    approach = await get_winning_approach(session, vote_id)
    if approach is None:
        return []
    result = await session.execute(
        select(Plan)
        .where(Plan.vote_id == vote_id, Plan.approach_id == approach.id)
        .order_by(Plan.created_at, Plan.id)
    )
    return list(result.scalars().all())


async def get_options_by_id(
    session: AsyncSession,
    stage: Stage | int,
    option_ids: Iterable[uuid.UUID],
) -> dict[uuid.UUID, Option]:
    """Fetch options of the stage's table by id."""
    ids = list(option_ids)
    if not ids:
        return {}
    model = OPTION_MODELS[Stage(stage).value]
    result = await session.execute(select(model).where(model.id.in_(ids)))
    return {option.id: option for option in result.scalars().all()}


async def load_questions(
    session: AsyncSession,
    stage: Stage | int,
    option_ids: Iterable[uuid.UUID],
) -> dict[uuid.UUID, list[KnowledgeQuestion]]:
    """Knowledge questions per option, in creation order."""
    ids = list(option_ids)
    if not ids:
        return {}
    result = await session.execute(
        select(KnowledgeQuestion)
        .where(
            KnowledgeQuestion.related_type == Stage(stage).related_type,
            KnowledgeQuestion.related_id.in_(ids),
        )
        .order_by(KnowledgeQuestion.created_at, KnowledgeQuestion.id)
    )
    grouped: dict[uuid.UUID, list[KnowledgeQuestion]] = defaultdict(list)
    for question in result.scalars().all():
        grouped[question.related_id].append(question)
    return dict(grouped)


async def load_quiz(session: AsyncSession, stage: Stage | int, option_id: uuid.UUID) -> list[QuizQuestion]:
    """Knowledge questions for one option with their answer keys classified."""
    questions = await load_questions(session, stage, [option_id])
    return [QuizQuestion.from_record(q) for q in questions.get(option_id, [])]


async def question_counts_for_options(
    session: AsyncSession,
    stage: Stage | int,
    option_ids: Iterable[uuid.UUID],
) -> dict[uuid.UUID, int]:
    """Number of knowledge questions attached to each option."""
    ids = list(option_ids)
    if not ids:
        return {}
    result = await session.execute(
        select(KnowledgeQuestion.related_id, func.count(KnowledgeQuestion.id))
        .where(
            KnowledgeQuestion.related_type == Stage(stage).related_type,
            KnowledgeQuestion.related_id.in_(ids),
        )
        .group_by(KnowledgeQuestion.related_id)
    )
    return {related_id: count for related_id, count in result.all()}


async def is_stage_votable(
    session: AsyncSession,
    vote: Vote,
    stage: Stage | int,
    now: datetime | None = None,
) -> bool:
    """True when ``stage`` is the active stage and it offers at least one option."""
    stage = Stage(stage)
    if vote.status != VoteStatus.OPEN or active_stage(vote, now) is not stage:
        return False
    return bool(await options_for_stage(session, vote.id, stage))


async def build_stage_options_response(
    session: AsyncSession,
    vote_id: uuid.UUID,
    stage: Stage | int,
) -> StageOptionsResponse:
    """Votable options of a stage with their public quiz questions."""
    stage = Stage(stage)
    options = await options_for_stage(session, vote_id, stage)
    questions = await load_questions(session, stage, [o.id for o in options])
    items = []
    for option in options:
        quiz = [QuizQuestion.from_record(q) for q in questions.get(option.id, [])]
        items.append(
            OptionResponse(
                id=option.id,
                title=option.title,
                description=option.description,
                is_winner=option.is_winner,
                questions=[
                    KnowledgeQuestionPublic(id=uuid.UUID(q.id), question=q.text, choices=list(q.choices))
                    for q in quiz
                ],
            )
        )
    return StageOptionsResponse(vote_id=vote_id, stage=stage.value, options=items)


async def revise_option(
    session: AsyncSession,
    stage: Stage | int,
    option_id: uuid.UUID,
    *,
    title: str | None = None,
    description: str | None = None,
    now: datetime | None = None,
) -> Option:
    """Edit an option, copying it to a new record once its stage has closed.

    Ballots and result snapshots keep pointing at the original record, so a
    closed stage's history is never rewritten. Knowledge questions are copied
    along with the option.

    Raises:
        ValueError: If the option does not exist.
    """
    stage = Stage(stage)
    model = OPTION_MODELS[stage.value]
    option = await session.get(model, option_id)
    if option is None:
        msg = "Option not found."
        raise ValueError(msg)
    vote = await session.get(Vote, option.vote_id)
    current = now or datetime.now(UTC)
    frozen = vote is not None and (vote.status == VoteStatus.CLOSED or stage_has_closed(vote, stage, current))

    if not frozen:
        if title is not None:
            option.title = title
        if description is not None:
            option.description = description
        await session.commit()
        await session.refresh(option)
        return option

    parent_column = {Stage.APPROACHES: "issue_id", Stage.PLANS: "approach_id"}.get(stage)
    copy = model(
        vote_id=option.vote_id,
        title=title if title is not None else option.title,
        description=description if description is not None else option.description,
    )
    if parent_column is not None:
        setattr(copy, parent_column, getattr(option, parent_column))
    session.add(copy)
    await session.flush()

    questions = await load_questions(session, stage, [option.id])
    for question in questions.get(option.id, []):
        session.add(
            KnowledgeQuestion(
                related_type=question.related_type,
                related_id=copy.id,
                question=question.question,
                options=list(question.options or []),
                correct_answer=question.correct_answer,
            )
        )
    await session.commit()
    await session.refresh(copy)
    logger.info("Option {} is frozen after stage {} closed; revised as {}", option.id, stage.value, copy.id)
    return copy
