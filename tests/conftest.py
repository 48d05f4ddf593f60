"""Test configuration and fixtures."""

import os

# The app module builds its engine at import time; keep it off PostgreSQL.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "")

import random
from datetime import datetime
from typing import AsyncGenerator, List, Optional
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from lead_engine.core.config import Settings
from lead_engine.crud.agent import create_agent
from lead_engine.crud.lead import create_lead
from lead_engine.crud.lead_assignment import create_assignment
from lead_engine.crud.settings import upsert_setting
from lead_engine.crud.source import create_source
from lead_engine.db.base_class import Base
from lead_engine.models import Agent, AgentPoolMembership, Lead, LeadAssignment, Source
from lead_engine.scheduler.clock import ManualClock
from lead_engine.scheduler.context import SchedulerContext
from lead_engine.services.lead_assignment import LeadAssignmentManager
from lead_engine.services.locks import SourceLockRegistry

# Wednesday, inside default office hours
START = datetime(2024, 5, 15, 10, 0, 0)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite so every session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url=None,
        job_batch_size=50,
        item_timeout_seconds=5.0,
    )


@pytest.fixture
def locks() -> SourceLockRegistry:
    return SourceLockRegistry()


@pytest.fixture
def ctx(session_factory, settings, clock, locks) -> SchedulerContext:
    return SchedulerContext(
        session_factory=session_factory,
        settings=settings,
        clock=clock,
        rng=random.Random(42),
        source_locks=locks,
    )


@pytest.fixture
def manager_for(locks, clock):
    """Build an orchestrator bound to a session, sharing the test's lock registry and clock."""
    def build(session: AsyncSession, notifier=None) -> LeadAssignmentManager:
        return LeadAssignmentManager(session, locks=locks, notifier=notifier, now=clock.now)
    return build


# ---------------- factories ----------------
class Factory:
    """Seeds rows and commits so the engine's own sessions see them."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def agent(self, name: Optional[str] = None, **flags) -> Agent:
        n = self._next()
        async with self.session_factory() as s:
            agent = await create_agent(s, full_name=name or f"Agent {n}", email=f"agent{n}@example.com", **flags)
            await s.commit()
            return agent

    async def agents(self, count: int, **flags) -> List[Agent]:
        made = [await self.agent(**flags) for _ in range(count)]
        return sorted(made, key=lambda a: a.agent_id)

    async def source(self, name: Optional[str] = None, **kwargs) -> Source:
        async with self.session_factory() as s:
            source = await create_source(s, name=name or f"source-{self._next()}", **kwargs)
            await s.commit()
            return source

    async def pool(self, source_id: UUID, agent_ids: List[UUID], flagged: Optional[UUID] = None) -> None:
        ordered = sorted(agent_ids)
        flagged = flagged if flagged is not None else (ordered[0] if ordered else None)
        async with self.session_factory() as s:
            for agent_id in ordered:
                s.add(AgentPoolMembership(
                    source_id=source_id, agent_id=agent_id, is_next_in_rotation=agent_id == flagged
                ))
            await s.commit()

    async def lead(self, **kwargs) -> Lead:
        n = self._next()
        kwargs.setdefault("first_name", f"Lead{n}")
        kwargs.setdefault("phone", f"+97150{n:07d}")
        assignment_count = kwargs.pop("assignment_count", 0)
        is_fresh = kwargs.pop("is_fresh", True)
        async with self.session_factory() as s:
            lead = await create_lead(s, **kwargs)
            lead.assignment_count = assignment_count
            lead.is_fresh = is_fresh
            await s.commit()
            return lead

    async def assignment(self, lead: Lead, agent_id: UUID, **kwargs) -> LeadAssignment:
        async with self.session_factory() as s:
            kwargs.setdefault("assignment_type", "manual")
            last_activity_at = kwargs.pop("last_activity_at", None)
            assignment = await create_assignment(s, lead_id=lead.lead_id, agent_id=agent_id, **kwargs)
            assignment.last_activity_at = last_activity_at
            await s.commit()
            return assignment

    async def setting(self, key: str, value: str, type: str = "string") -> None:
        async with self.session_factory() as s:
            await upsert_setting(s, key, value, type)
            await s.commit()


@pytest.fixture
def factory(session_factory) -> Factory:
    return Factory(session_factory)


async def reload(session_factory, model, pk):
    async with session_factory() as s:
        return await s.get(model, pk)


@pytest.fixture
def fetch(session_factory):
    """Re-read a row through a fresh session."""
    async def _fetch(model, pk):
        return await reload(session_factory, model, pk)
    return _fetch
