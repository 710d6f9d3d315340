"""Database migration CLI commands using Alembic programmatically."""

from pathlib import Path

import typer
from alembic import command
from alembic.config import Config
from loguru import logger

db_app = typer.Typer()

ConfigOption = typer.Option(Path("alembic.ini"), "--config", "-c", help="Path to alembic.ini")


def _load_config(path: Path) -> Config:
    if not path.is_file():
        typer.echo(f"Alembic config not found: {path}", err=True)
        raise typer.Exit(code=1)
    return Config(str(path))


@db_app.command()
def upgrade(
    revision: str = typer.Argument("head", help="Target revision"),
    sql: bool = typer.Option(False, "--sql", help="Print the SQL instead of running it"),
    config: Path = ConfigOption,  # noqa: B008
) -> None:
    """Run database migrations up to the target revision."""
    logger.info("Upgrading database to {}", revision)
    command.upgrade(_load_config(config), revision, sql=sql)
    logger.info("Database upgrade complete")


@db_app.command()
def downgrade(
    revision: str = typer.Argument("-1", help="Target revision"),
    config: Path = ConfigOption,  # noqa: B008
) -> None:
    """Rollback database migration to the target revision."""
    logger.info("Downgrading database to {}", revision)
    command.downgrade(_load_config(config), revision)
    logger.info("Database downgrade complete")


@db_app.command()
def current(
    config: Path = ConfigOption,  # noqa: B008
) -> None:
    """Show the current database migration revision."""
    command.current(_load_config(config), verbose=True)
