# lead_engine/crud/agent_pool.py
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.models import AgentPoolMembership, Agent


# ---------------- READ ----------------
async def get_ring(
    db: AsyncSession, source_id: UUID, for_update: bool = False
) -> List[Tuple[AgentPoolMembership, Agent]]:
    """
    Every pool member of a source with its agent, in ring order (agent id ascending).
    Rows are always re-read from the store so a long-lived session never acts on a stale flag.
    """
    stmt = (
        select(AgentPoolMembership, Agent)
        .join(Agent, Agent.agent_id == AgentPoolMembership.agent_id)
        .where(AgentPoolMembership.source_id == source_id)
        .order_by(AgentPoolMembership.agent_id.asc())
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update(of=AgentPoolMembership)
    result = await db.execute(stmt)
    return [(row[0], row[1]) for row in result.all()]


async def get_membership(db: AsyncSession, source_id: UUID, agent_id: UUID) -> Optional[AgentPoolMembership]:
    result = await db.execute(
        select(AgentPoolMembership)
        .where(
            AgentPoolMembership.source_id == source_id,
            AgentPoolMembership.agent_id == agent_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ---------------- CREATE ----------------
async def create_membership(
    db: AsyncSession, source_id: UUID, agent_id: UUID, is_next_in_rotation: bool = False
) -> AgentPoolMembership:
    membership = AgentPoolMembership(
        source_id=source_id,
        agent_id=agent_id,
        is_next_in_rotation=is_next_in_rotation,
    )
    db.add(membership)
    await db.flush()
    return membership


# ---------------- DELETE ----------------
async def delete_membership(db: AsyncSession, membership: AgentPoolMembership) -> None:
    await db.delete(membership)
    await db.flush()


async def delete_pool(db: AsyncSession, source_id: UUID) -> int:
    result = await db.execute(
        delete(AgentPoolMembership).where(AgentPoolMembership.source_id == source_id)
    )
    return result.rowcount
