# lead_engine/crud/agent.py
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select, and_, exists
from sqlalchemy.orm import aliased
from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.models import Agent


def eligible_clause():
    """SQL form of Agent.is_eligible."""
    return and_(Agent.is_active.is_(True), Agent.is_available.is_(True), Agent.is_excluded.is_(False))


async def get_agent(db: AsyncSession, agent_id: UUID) -> Optional[Agent]:
    result = await db.execute(select(Agent).where(Agent.agent_id == agent_id))
    return result.scalar_one_or_none()


async def get_agents(db: AsyncSession, agent_ids: Iterable[UUID]) -> List[Agent]:
    ids = list(agent_ids)
    if not ids:
        return []
    result = await db.execute(select(Agent).where(Agent.agent_id.in_(ids)))
    return list(result.scalars().all())


async def get_eligible_agents(db: AsyncSession, exclude: Iterable[UUID] = ()) -> List[Agent]:
    """All agents currently able to receive leads, ordered by id for determinism."""
    stmt = select(Agent).where(eligible_clause())
    excluded = [a for a in exclude if a is not None]
    if excluded:
        stmt = stmt.where(Agent.agent_id.notin_(excluded))
    result = await db.execute(stmt.order_by(Agent.agent_id.asc()))
    return list(result.scalars().all())


async def create_agent(
    db: AsyncSession,
    full_name: str,
    email: str,
    phone: Optional[str] = None,
    is_active: bool = True,
    is_available: bool = True,
    is_excluded: bool = False,
    manager_id: Optional[UUID] = None,
) -> Agent:
    agent = Agent(
        full_name=full_name,
        email=email,
        phone=phone,
        is_active=is_active,
        is_available=is_available,
        is_excluded=is_excluded,
        manager_id=manager_id,
    )
    db.add(agent)
    await db.flush()
    return agent


# --- Managers and their teams (daily report recipients) ---
async def get_managers(db: AsyncSession, limit: int):
    """Active agents with at least one direct report, oldest first."""
    reports = aliased(Agent)
    stmt = (
        select(Agent.agent_id, Agent.full_name)
        .where(
            Agent.is_active.is_(True),
            exists().where(reports.manager_id == Agent.agent_id),
        )
        .order_by(Agent.created_at.asc(), Agent.agent_id.asc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return result.mappings().all()


async def get_team_ids(db: AsyncSession, manager_id: UUID) -> List[UUID]:
    """The manager followed by their direct reports."""
    result = await db.execute(select(Agent.agent_id).where(Agent.manager_id == manager_id))
    return [manager_id, *result.scalars().all()]
