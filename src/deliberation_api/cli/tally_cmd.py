"""CLI commands for tallying.

``tally sweep`` is meant to be driven by cron when the in-process auto-tally
loop is disabled.
"""

import asyncio
import uuid
from typing import Annotated

import typer

from deliberation_api.schemas.tally import TallyResponse

tally_app = typer.Typer()


def _parse_vote_id(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid vote ID: {value}") from exc


def _print_rows(tally: TallyResponse) -> None:
    for row in tally.results:
        marker = "*" if row.is_winner else " "
        breakdown = row.knowledge_breakdown
        typer.echo(
            f"{marker} {row.choice_id}  {row.name or '-'}  votes={row.total_votes} "
            f"weighted={row.weighted_votes:.3f} "
            f"bkq=[{breakdown.bkq0},{breakdown.bkq1},{breakdown.bkq2},{breakdown.bkq3}]"
        )


@tally_app.command("run")
def run(
    vote_id: Annotated[str, typer.Option("--vote-id", help="Vote UUID")],
    stage: Annotated[int, typer.Option("--stage", min=1, max=3, help="Stage number (1-3)")],
) -> None:
    """Tally one stage of a vote into a new result snapshot."""
    asyncio.run(_run_impl(_parse_vote_id(vote_id), stage))


async def _run_impl(vote_id: uuid.UUID, stage: int) -> None:
    """Async implementation of the run command."""
    from deliberation_api.core.config import get_settings
    from deliberation_api.core.database import dispose_engine, get_session_factory, init_engine
    from deliberation_api.lib.staged_voting import VotingError
    from deliberation_api.services import tally_service

    settings = get_settings()
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            try:
                outcome = await tally_service.run_tally(session, vote_id, stage)
            except VotingError as exc:
                typer.echo(f"Tally failed ({exc.code}): {exc.message}", err=True)
                raise typer.Exit(code=1) from exc
            typer.echo(f"Tally run {outcome.tally_run} for stage {outcome.stage}: winner {outcome.winner_id or 'none'}")
            _print_rows(outcome)
    finally:
        await dispose_engine()


@tally_app.command("sweep")
def sweep(
    window: Annotated[
        int | None,
        typer.Option("--window", min=1, help="Look-back window in seconds (default: AUTO_TALLY_WINDOW_SECONDS)"),
    ] = None,
) -> None:
    """Tally every open vote stage that ended within the window."""
    asyncio.run(_sweep_impl(window))


async def _sweep_impl(window: int | None) -> None:
    """Async implementation of the sweep command."""
    from deliberation_api.core.config import get_settings
    from deliberation_api.core.database import dispose_engine, get_session_factory, init_engine
    from deliberation_api.lib.staged_voting import VotingError
    from deliberation_api.services import tally_service

    settings = get_settings()
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            try:
                report = await tally_service.auto_tally_sweep(session, window_seconds=window)
            except VotingError as exc:
                typer.echo(f"Sweep failed ({exc.code}): {exc.message}", err=True)
                raise typer.Exit(code=1) from exc
    finally:
        await dispose_engine()

    failures = [item for item in report.results if not item.success]
    typer.echo(f"Processed {report.processed} stage tally(ies), {len(failures)} failed")
    for item in failures:
        typer.echo(f"  vote {item.vote_id} stage {item.stage}: {item.error}")
    for vote_id in report.closed_votes:
        typer.echo(f"Closed vote {vote_id}")
    if failures:
        raise typer.Exit(code=1)


@tally_app.command("results")
def results(
    vote_id: Annotated[str, typer.Option("--vote-id", help="Vote UUID")],
    stage: Annotated[int, typer.Option("--stage", min=1, max=3, help="Stage number (1-3)")],
) -> None:
    """Show the latest tally run of a stage."""
    asyncio.run(_results_impl(_parse_vote_id(vote_id), stage))


async def _results_impl(vote_id: uuid.UUID, stage: int) -> None:
    """Async implementation of the results command."""
    from deliberation_api.core.config import get_settings
    from deliberation_api.core.database import dispose_engine, get_session_factory, init_engine
    from deliberation_api.services import tally_service

    settings = get_settings()
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            latest = await tally_service.latest_results(session, vote_id, stage)
    finally:
        await dispose_engine()

    if latest is None:
        typer.echo(f"Stage {stage} of vote {vote_id} has not been tallied yet.")
        return
    typer.echo(f"Tally run {latest.tally_run} for stage {latest.stage}")
    _print_rows(latest)
