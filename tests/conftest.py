"""Shared test fixtures for async database, sessions, seeded votes, and auth tokens."""

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from deliberation_api.core.config import Settings
from deliberation_api.core.security import create_access_token
from deliberation_api.models import (
    Approach,
    Issue,
    KnowledgeQuestion,
    Plan,
    Population,
    User,
    UserPopulation,
    Vote,
    VotePopulation,
)
from deliberation_api.models.base import Base

TEST_SECRET = "test-secret-key-not-for-production-use"

# Reference instant used by time-dependent tests
NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Provide the required settings to code that calls get_settings()."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("JWT_SECRET_KEY", TEST_SECRET)
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    for name in ("TALLY_WEIGHTING", "QUIZ_LENIENT_OPTION_MATCH", "AUTO_TALLY_ENABLED", "LOG_DIR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings() -> Settings:
    """Test application settings."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret_key=TEST_SECRET,
        jwt_algorithm="HS256",
        _env_file=None,
    )


@pytest.fixture
async def async_engine(settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory async SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    async with session_factory() as session:
        yield session


class VoteBuilder:
    """Seeds votes, options, knowledge questions, and voters.

    Every created row gets a strictly increasing ``created_at`` so creation
    order is deterministic even within one second.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._clock = datetime(2026, 1, 1, tzinfo=UTC)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def _save(self, obj: Any) -> Any:
        self.session.add(obj)
        await self.session.commit()
        return obj

    async def user(self, username: str | None = None, role: str = "voter") -> User:
        return await self._save(User(username=username or f"user-{uuid.uuid4().hex[:8]}", role=role))

    async def population(self, name: str | None = None) -> Population:
        return await self._save(Population(name=name or f"pop-{uuid.uuid4().hex[:8]}", created_at=self._tick()))

    async def join(self, user: User, population: Population) -> None:
        await self._save(UserPopulation(user_id=user.id, population_id=population.id))

    async def assign(self, vote: Vote, population: Population) -> None:
        await self._save(VotePopulation(vote_id=vote.id, population_id=population.id))

    async def vote(self, status: str = "open", **stage_times: datetime | None) -> Vote:
        return await self._save(Vote(title="Park renewal", status=status, created_at=self._tick(), **stage_times))

    async def issue(self, vote: Vote, title: str = "Issue") -> Issue:
        return await self._save(Issue(vote_id=vote.id, title=title, created_at=self._tick()))

    async def approach(self, vote: Vote, issue: Issue, title: str = "Approach") -> Approach:
        return await self._save(Approach(vote_id=vote.id, issue_id=issue.id, title=title, created_at=self._tick()))

    async def plan(self, vote: Vote, approach: Approach, title: str = "Plan") -> Plan:
        return await self._save(Plan(vote_id=vote.id, approach_id=approach.id, title=title, created_at=self._tick()))

    async def question(
        self,
        option: Issue | Approach | Plan,
        related_type: str,
        correct_answer: str | None = "A",
        choices: list[str] | None = None,
        text: str = "Which one?",
    ) -> KnowledgeQuestion:
        return await self._save(
            KnowledgeQuestion(
                related_type=related_type,
                related_id=option.id,
                question=text,
                options=choices if choices is not None else ["A", "B", "C"],
                correct_answer=correct_answer,
                created_at=self._tick(),
            )
        )

    async def quiz(self, option: Issue | Approach | Plan, related_type: str, count: int = 3) -> list[KnowledgeQuestion]:
        """Attach ``count`` questions whose correct answer is "A"."""
        return [await self.question(option, related_type, text=f"Question {i + 1}") for i in range(count)]

    async def eligible_voter(self, vote: Vote, username: str | None = None) -> User:
        """Create a voter sharing a population with ``vote``."""
        population = await self.population()
        await self.assign(vote, population)
        voter = await self.user(username)
        await self.join(voter, population)
        return voter


@pytest.fixture
def builder(async_session: AsyncSession) -> VoteBuilder:
    """Seed helper bound to the test session."""
    return VoteBuilder(async_session)


def stage_open(stage: int, now: datetime = NOW) -> dict[str, datetime]:
    """Stage times where ``stage`` is active at ``now`` and earlier stages have ended."""
    times: dict[str, datetime] = {}
    for n in (1, 2, 3):
        offset = (n - stage) * 2
        times[f"stage{n}_start"] = now + timedelta(days=offset - 1)
        times[f"stage{n}_end"] = now + timedelta(days=offset + 1) - timedelta(hours=1)
    return times


@pytest.fixture
def now() -> datetime:
    """Reference instant for time-dependent tests."""
    return NOW


@pytest.fixture
def stage_times() -> Callable[..., dict[str, datetime]]:
    """Factory for stage boundaries with a given stage active at ``now``."""
    return stage_open


@pytest.fixture
def admin_token(settings: Settings) -> str:
    """Generate a JWT access token for an admin user."""
    return create_access_token(
        subject="testadmin",
        role="admin",
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


@pytest.fixture
def voter_token(settings: Settings) -> str:
    """Generate a JWT access token for a voter."""
    return create_access_token(
        subject="testvoter",
        role="voter",
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )
