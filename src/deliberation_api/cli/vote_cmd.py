"""CLI commands for the vote lifecycle."""

import asyncio
import uuid
from typing import Annotated

import typer

vote_app = typer.Typer()


@vote_app.command("status")
def status(
    vote_id: Annotated[str, typer.Option("--vote-id", help="Vote UUID")],
) -> None:
    """Show a vote's status and the stage active right now."""
    try:
        parsed = uuid.UUID(vote_id)
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid vote ID: {vote_id}") from exc
    asyncio.run(_status_impl(parsed))


async def _status_impl(vote_id: uuid.UUID) -> None:
    """Async implementation of the status command."""
    from deliberation_api.core.config import get_settings
    from deliberation_api.core.database import dispose_engine, get_session_factory, init_engine
    from deliberation_api.lib.staged_voting import VoteNotFound
    from deliberation_api.services import vote_service

    settings = get_settings()
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            try:
                report = await vote_service.get_stage_status(session, vote_id)
            except VoteNotFound as exc:
                typer.echo(exc.message, err=True)
                raise typer.Exit(code=1) from exc
    finally:
        await dispose_engine()

    active = f"stage {report.active_stage}" if report.active_stage is not None else "no active stage"
    votable = "votable" if report.votable else "not votable"
    typer.echo(f"Vote {report.vote_id}: {report.status}, {active}, {votable}")


@vote_app.command("set-status")
def set_status(
    vote_id: Annotated[str, typer.Option("--vote-id", help="Vote UUID")],
    new_status: Annotated[str, typer.Option("--status", help="Target status: draft, open, closed")],
) -> None:
    """Move a vote to a new lifecycle status."""
    try:
        parsed = uuid.UUID(vote_id)
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid vote ID: {vote_id}") from exc
    asyncio.run(_set_status_impl(parsed, new_status))


async def _set_status_impl(vote_id: uuid.UUID, new_status: str) -> None:
    """Async implementation of the set-status command."""
    from deliberation_api.core.config import get_settings
    from deliberation_api.core.database import dispose_engine, get_session_factory, init_engine
    from deliberation_api.lib.staged_voting import VoteNotReady, VotingError
    from deliberation_api.services import vote_service

    settings = get_settings()
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            try:
                vote = await vote_service.change_status(session, vote_id, new_status)
            except VotingError as exc:
                typer.echo(f"Status change failed ({exc.code}): {exc.message}", err=True)
                if isinstance(exc, VoteNotReady):
                    for problem in exc.problems:
                        typer.echo(f"  - {problem}", err=True)
                raise typer.Exit(code=1) from exc
            typer.echo(f"Vote {vote.id} is now {vote.status}")
    finally:
        await dispose_engine()


@vote_app.command("revise-option")
def revise_option(
    option_id: Annotated[str, typer.Option("--option-id", help="Issue, approach or plan UUID")],
    stage: Annotated[int, typer.Option("--stage", min=1, max=3, help="Stage the option is voted in (1-3)")],
    title: Annotated[str | None, typer.Option("--title", help="New title")] = None,
    description: Annotated[str | None, typer.Option("--description", help="New description")] = None,
) -> None:
    """Edit an option. After its stage has closed the edit is saved as a new copy."""
    try:
        parsed = uuid.UUID(option_id)
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid option ID: {option_id}") from exc
    if title is None and description is None:
        raise typer.BadParameter("Nothing to change: pass --title and/or --description.")
    asyncio.run(_revise_option_impl(parsed, stage, title, description))


async def _revise_option_impl(option_id: uuid.UUID, stage: int, title: str | None, description: str | None) -> None:
    """Async implementation of the revise-option command."""
    from deliberation_api.core.config import get_settings
    from deliberation_api.core.database import dispose_engine, get_session_factory, init_engine
    from deliberation_api.services import option_service

    settings = get_settings()
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            try:
                revised = await option_service.revise_option(
                    session, stage, option_id, title=title, description=description
                )
            except ValueError as exc:
                typer.echo(f"Error: {exc}", err=True)
                raise typer.Exit(code=1) from exc
    finally:
        await dispose_engine()

    if revised.id == option_id:
        typer.echo(f"Option {option_id} updated")
    else:
        typer.echo(f"Stage {stage} has closed; saved the revision as new option {revised.id}")
