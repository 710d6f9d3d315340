"""Tally service — weighted tally runs, result snapshots, and the auto-tally sweep.

Every run appends a new set of ``results`` rows under the next ``tally_run``
number; earlier runs are never touched. The option flagged ``is_winner`` is
what the next stage's option resolver reads.
"""

import asyncio
import uuid
from datetime import UTC, datetime, timedelta

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from deliberation_api.core.config import get_settings
from deliberation_api.core.database import is_store_failure, store_guard, store_message
from deliberation_api.lib.staged_voting import (
    BallotRecord,
    OptionRef,
    Schedule,
    Stage,
    TallyFailed,
    WeightingCurve,
    all_stages_elapsed,
    as_utc,
    compute_tally,
    configured_stages,
    stages_ended_between,
    winner_of,
)
from deliberation_api.lib.staged_voting.tally import KNOWLEDGE_BUCKETS
from deliberation_api.models.ballot import Ballot
from deliberation_api.models.option import OPTION_MODELS
from deliberation_api.models.result_snapshot import ResultSnapshot
from deliberation_api.models.vote import Vote, VoteStatus
from deliberation_api.schemas.tally import (
    KnowledgeBreakdown,
    SweepItem,
    SweepResponse,
    TallyResponse,
    TallyRow,
)
from deliberation_api.services.option_service import (
    get_options_by_id,
    get_stage_winner,
    options_for_stage,
    question_counts_for_options,
)
from deliberation_api.services.vote_service import require_vote

MAX_RUN_ATTEMPTS = 3

_LATEST = datetime.max.replace(tzinfo=UTC)


async def _latest_run(session: AsyncSession, vote_id: uuid.UUID, stage: Stage) -> int:
    result = await session.execute(
        select(func.coalesce(func.max(ResultSnapshot.tally_run), 0)).where(
            ResultSnapshot.vote_id == vote_id,
            ResultSnapshot.stage == stage.value,
        )
    )
    return int(result.scalar_one())


async def _tally_once(
    session: AsyncSession,
    vote_id: uuid.UUID,
    stage: Stage,
    curve: WeightingCurve,
) -> TallyResponse:
    await require_vote(session, vote_id)
    if stage.previous is not None:
        await get_stage_winner(session, vote_id, stage.previous, required=True)

    options = await options_for_stage(session, vote_id, stage)
    choice_column = getattr(Ballot, stage.choice_column)
    ballot_rows = await session.execute(
        select(choice_column, Ballot.knowledge_score).where(
            Ballot.vote_id == vote_id,
            Ballot.stage == stage.value,
            choice_column.is_not(None),
        )
    )
    ballots = [BallotRecord(choice_id=str(choice_id), knowledge_score=score) for choice_id, score in ballot_rows.all()]

    choice_ids = {option.id for option in options} | {uuid.UUID(b.choice_id) for b in ballots}
    counts = await question_counts_for_options(session, stage, choice_ids)
    refs = [OptionRef(id=str(option.id), title=option.title, created_at=option.created_at) for option in options]

    tallies = compute_tally(refs, ballots, {str(k): v for k, v in counts.items()}, curve)
    if not tallies:
        logger.info("Nothing to tally for vote {} stage {}", vote_id, stage.value)
        return TallyResponse(vote_id=vote_id, stage=stage.value, tally_run=await _latest_run(session, vote_id, stage))

    tally_run = await _latest_run(session, vote_id, stage) + 1
    for tally in tallies:
        breakdown = tally.knowledge_breakdown
        session.add(
            ResultSnapshot(
                vote_id=vote_id,
                stage=stage.value,
                choice_id=uuid.UUID(tally.choice_id),
                tally_run=tally_run,
                total_votes=tally.total_votes,
                weighted_votes=tally.weighted_votes,
                bkq0_count=breakdown[0],
                bkq1_count=breakdown[1],
                bkq2_count=breakdown[2],
                bkq3_count=breakdown[3],
                is_winner=tally.is_winner,
            )
        )

    model = OPTION_MODELS[stage.value]
    await session.execute(update(model).where(model.vote_id == vote_id).values(is_winner=False))
    winner = winner_of(tallies)
    winner_id = uuid.UUID(winner.choice_id) if winner is not None else None
    if winner_id is not None:
        await session.execute(update(model).where(model.id == winner_id).values(is_winner=True))
    await session.commit()

    logger.info(
        "Tally run {} for vote {} stage {}: {} option(s), winner={}",
        tally_run,
        vote_id,
        stage.value,
        len(tallies),
        winner_id,
    )
    return TallyResponse(
        vote_id=vote_id,
        stage=stage.value,
        tally_run=tally_run,
        winner_id=winner_id,
        results=[
            TallyRow(
                choice_id=uuid.UUID(t.choice_id),
                name=t.title,
                total_votes=t.total_votes,
                weighted_votes=t.weighted_votes,
                knowledge_breakdown=KnowledgeBreakdown(
                    **{f"bkq{i}": t.knowledge_breakdown[i] for i in range(KNOWLEDGE_BUCKETS)}
                ),
                is_winner=t.is_winner,
            )
            for t in tallies
        ],
    )


async def run_tally(
    session: AsyncSession,
    vote_id: uuid.UUID,
    stage: Stage | int,
    *,
    curve: WeightingCurve | str | None = None,
) -> TallyResponse:
    """Tally all ballots of a vote stage into a new result snapshot.

    Reads ballots in one statement, writes one snapshot row per option under
    the next run number, and moves the stage's winner flag, all in a single
    transaction. A concurrent run that claims the same run number causes a
    retry.

    Args:
        session: Async database session.
        vote_id: Vote to tally.
        stage: Stage to tally.
        curve: Weighting curve, defaults to the ``tally_weighting`` setting.

    Returns:
        TallyResponse with ranked rows, the winner, and the run number.

    Raises:
        VoteNotFound: If the vote does not exist.
        NoWinnerYet: If the previous stage has no winner.
        StoreUnavailable: If the database cannot be reached.
        TallyFailed: If the store rejects the run, or run numbers keep colliding.
    """
    stage = Stage(stage)
    weighting = WeightingCurve(curve if curve is not None else get_settings().tally_weighting)

    async with store_guard():
        attempt = 1
        while True:
            try:
                return await _tally_once(session, vote_id, stage, weighting)
            except IntegrityError as exc:
                await session.rollback()
                if attempt >= MAX_RUN_ATTEMPTS:
                    logger.error("Tally for vote {} stage {} gave up after {} attempts", vote_id, stage.value, attempt)
                    raise TallyFailed(store_message(exc)) from exc
                logger.warning(
                    "Tally run number conflict for vote {} stage {}, retrying ({}/{})",
                    vote_id,
                    stage.value,
                    attempt,
                    MAX_RUN_ATTEMPTS,
                )
                attempt += 1
            except DBAPIError as exc:
                if is_store_failure(exc):
                    raise
                await session.rollback()
                logger.error("Tally for vote {} stage {} rejected by the store: {}", vote_id, stage.value, exc.orig)
                raise TallyFailed(store_message(exc)) from exc


async def latest_results(
    session: AsyncSession,
    vote_id: uuid.UUID,
    stage: Stage | int,
) -> TallyResponse | None:
    """Return the rows of the most recent tally run, or None if never tallied.

    Raises:
        VoteNotFound: If the vote does not exist.
    """
    stage = Stage(stage)
    await require_vote(session, vote_id)
    tally_run = await _latest_run(session, vote_id, stage)
    if tally_run == 0:
        return None

    result = await session.execute(
        select(ResultSnapshot).where(
            ResultSnapshot.vote_id == vote_id,
            ResultSnapshot.stage == stage.value,
            ResultSnapshot.tally_run == tally_run,
        )
    )
    snapshots = list(result.scalars().all())
    options = await get_options_by_id(session, stage, [s.choice_id for s in snapshots])

    def rank(snapshot: ResultSnapshot) -> tuple[float, datetime, str]:
        option = options.get(snapshot.choice_id)
        created_at = as_utc(option.created_at) if option is not None else None
        return (-snapshot.weighted_votes, created_at or _LATEST, str(snapshot.choice_id))

    rows = [
        TallyRow(
            choice_id=s.choice_id,
            name=options[s.choice_id].title if s.choice_id in options else "",
            total_votes=s.total_votes,
            weighted_votes=s.weighted_votes,
            knowledge_breakdown=KnowledgeBreakdown(
                bkq0=s.bkq0_count, bkq1=s.bkq1_count, bkq2=s.bkq2_count, bkq3=s.bkq3_count
            ),
            is_winner=s.is_winner,
        )
        for s in sorted(snapshots, key=rank)
    ]
    winner_id = next((row.choice_id for row in rows if row.is_winner), None)
    return TallyResponse(vote_id=vote_id, stage=stage.value, tally_run=tally_run, winner_id=winner_id, results=rows)


async def _close_if_finished(
    session: AsyncSession,
    vote_id: uuid.UUID,
    schedule: Schedule,
    now: datetime,
) -> bool:
    """Close an open vote whose last configured stage has elapsed and been tallied."""
    if not all_stages_elapsed(schedule, now):
        return False
    final_stage = configured_stages(schedule)[-1]
    if await _latest_run(session, vote_id, final_stage) == 0:
        return False

    winner = await get_stage_winner(session, vote_id, final_stage)
    values: dict[str, str] = {"status": VoteStatus.CLOSED.value}
    if winner is not None:
        values["outcome"] = winner.title
    await session.execute(
        update(Vote).where(Vote.id == vote_id, Vote.status == VoteStatus.OPEN.value).values(**values)
    )
    await session.commit()
    logger.info("Vote {} closed after final stage {} tally", vote_id, final_stage.value)
    return True


async def auto_tally_sweep(
    session: AsyncSession,
    *,
    now: datetime | None = None,
    window_seconds: int | None = None,
) -> SweepResponse:
    """Tally every stage of an open vote that ended within the recent window.

    Each vote stage is tallied independently; a failure is logged, reported
    in the response, and does not stop the sweep. Votes whose stages have all
    elapsed and whose final stage has been tallied are closed afterwards.

    Args:
        session: Async database session.
        now: Reference time, defaults to the current UTC time.
        window_seconds: Look-back window, defaults to ``auto_tally_window_seconds``.

    Returns:
        SweepResponse with one item per attempted tally.

    Raises:
        StoreUnavailable: If the open votes cannot be read.
    """
    current = as_utc(now) if now is not None else datetime.now(UTC)
    if window_seconds is None:
        window_seconds = get_settings().auto_tally_window_seconds
    since = current - timedelta(seconds=window_seconds)

    async with store_guard():
        result = await session.execute(
            select(Vote).where(Vote.status == VoteStatus.OPEN.value).order_by(Vote.created_at, Vote.id)
        )
        # Rollbacks expire ORM instances, so work from plain copies
        open_votes = [(vote.id, Schedule.of(vote)) for vote in result.scalars().all()]

    items: list[SweepItem] = []
    for vote_id, schedule in open_votes:
        for stage in stages_ended_between(schedule, since, current):
            try:
                outcome = await run_tally(session, vote_id, stage)
                items.append(
                    SweepItem(
                        vote_id=vote_id,
                        stage=stage.value,
                        success=True,
                        tally_run=outcome.tally_run,
                        winner_id=outcome.winner_id,
                    )
                )
            except Exception as exc:
                await session.rollback()
                logger.exception("Auto-tally failed for vote {} stage {}", vote_id, stage.value)
                items.append(SweepItem(vote_id=vote_id, stage=stage.value, success=False, error=str(exc)))

    closed: list[uuid.UUID] = []
    for vote_id, schedule in open_votes:
        try:
            async with store_guard():
                finished = await _close_if_finished(session, vote_id, schedule, current)
            if finished:
                closed.append(vote_id)
        except Exception:
            await session.rollback()
            logger.exception("Failed to close vote {}", vote_id)

    if items or closed:
        logger.info("Auto-tally sweep: {} tally attempt(s), {} vote(s) closed", len(items), len(closed))
    return SweepResponse(timestamp=current, processed=len(items), results=items, closed_votes=closed)


async def auto_tally_loop(
    interval: int,
    window_seconds: int | None = None,
) -> None:
    """Background asyncio loop that runs the auto-tally sweep.

    Args:
        interval: Seconds between sweeps.
        window_seconds: Look-back window passed to each sweep.
    """
    from deliberation_api.core.database import get_session_factory

    logger.info("Auto-tally loop started (interval={}s)", interval)

    while True:
        try:
            await asyncio.sleep(interval)
            factory = get_session_factory()
            async with factory() as session:
                await auto_tally_sweep(session, window_seconds=window_seconds)
        except asyncio.CancelledError:
            logger.info("Auto-tally loop cancelled")
            break
        except Exception:
            logger.exception("Auto-tally loop error")
