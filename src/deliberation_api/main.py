"""FastAPI application factory.

Creates the FastAPI app with lifespan management, exception handlers,
and OpenAPI metadata.
"""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from deliberation_api.core.config import get_settings
from deliberation_api.core.database import dispose_engine, init_engine
from deliberation_api.core.logging import setup_logging
from deliberation_api.lib.staged_voting import (
    IncompleteQuiz,
    IneligibleOption,
    InvalidStatusTransition,
    NoWinnerYet,
    StageNotActive,
    StoreUnavailable,
    TallyFailed,
    VoteNotFound,
    VoteNotReady,
    VoterNotEligible,
    VotingError,
)
from deliberation_api.schemas.common import ErrorResponse

ERROR_STATUS_CODES: dict[type[VotingError], int] = {
    VoteNotFound: 404,
    VoterNotEligible: 403,
    StageNotActive: 409,
    NoWinnerYet: 409,
    InvalidStatusTransition: 409,
    VoteNotReady: 409,
    IncompleteQuiz: 422,
    IneligibleOption: 422,
    StoreUnavailable: 503,
    TallyFailed: 500,
}


def error_status_code(exc: VotingError) -> int:
    """HTTP status for a voting error; unmapped errors are 400."""
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return 400


def error_response(exc: VotingError) -> ErrorResponse:
    """Build the response body for a voting error."""
    errors = None
    if isinstance(exc, IncompleteQuiz):
        errors = [{"question_id": question_id, "msg": "Answer required"} for question_id in exc.missing_question_ids]
    elif isinstance(exc, VoteNotReady):
        errors = [{"msg": problem} for problem in exc.problems]
    return ErrorResponse(detail=exc.message, code=exc.code, errors=errors)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle: init engine on startup, dispose on shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    # Start auto-tally background task
    tally_task = None
    if settings.auto_tally_enabled:
        from deliberation_api.services.tally_service import auto_tally_loop

        tally_task = asyncio.create_task(
            auto_tally_loop(settings.auto_tally_interval, settings.auto_tally_window_seconds)
        )

    yield

    # Cancel background tally task
    if tally_task is not None:
        tally_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await tally_task

    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Deliberation API",
        description="Staged citizen-deliberation voting with knowledge-weighted tallies",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Register exception handlers
    @app.exception_handler(VotingError)
    async def voting_error_handler(request: Request, exc: VotingError) -> JSONResponse:
        return JSONResponse(
            status_code=error_status_code(exc),
            content=error_response(exc).model_dump(exclude_none=True),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc)},
        )

    # Register middleware and routers
    from deliberation_api.api.router import create_router, setup_middleware

    setup_middleware(app, settings)
    app.include_router(create_router(settings))

    return app
