"""API test fixtures: the full application bound to the in-memory test session."""

from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import UTC, datetime

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from deliberation_api.core.dependencies import get_async_session, get_current_user
from deliberation_api.main import create_app
from deliberation_api.models import User


@pytest.fixture
def app(async_session: AsyncSession) -> FastAPI:
    """Application whose requests share the test session."""
    application = create_app()

    async def _session() -> AsyncGenerator[AsyncSession]:
        yield async_session

    application.dependency_overrides[get_async_session] = _session
    return application


@pytest.fixture
def client_as(app: FastAPI) -> Callable[[User], AbstractAsyncContextManager[AsyncClient]]:
    """Open an HTTP client authenticated as the given user."""

    @asynccontextmanager
    async def _client(user: User) -> AsyncIterator[AsyncClient]:
        app.dependency_overrides[get_current_user] = lambda: user
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client

    return _client


@pytest.fixture
def wall_now() -> datetime:
    """Current time; request handlers resolve stages against the real clock."""
    return datetime.now(UTC)
