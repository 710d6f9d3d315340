"""Typer CLI root application with serve command."""

import typer

from deliberation_api.core.config import get_settings
from deliberation_api.core.logging import setup_logging

app = typer.Typer(name="deliberation-api", help="Staged deliberation voting CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
    host: str = typer.Option("0.0.0.0", "--host", help="Bind host"),  # noqa: S104
    port: int = typer.Option(8000, "--port", help="Bind port"),
) -> None:
    """Start the API server."""
    import uvicorn

    uvicorn.run(
        "deliberation_api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from deliberation_api.cli.db_cmd import db_app
    from deliberation_api.cli.tally_cmd import tally_app
    from deliberation_api.cli.vote_cmd import vote_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(tally_app, name="tally", help="Tally and auto-tally commands")
    app.add_typer(vote_app, name="vote", help="Vote lifecycle commands")


_register_subcommands()
