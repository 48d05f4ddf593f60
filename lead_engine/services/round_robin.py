# lead_engine/services/round_robin.py
import logging
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from lead_engine.core.exceptions import (
    AgentAlreadyInPool,
    AgentNotInPool,
    ConcurrentModification,
    SourceNotFound,
    UnknownAgent,
)
from lead_engine.crud.agent import get_agent, get_agents
from lead_engine.crud.agent_pool import (
    create_membership,
    delete_membership,
    delete_pool,
    get_membership,
    get_ring,
)
from lead_engine.crud.source import get_source
from lead_engine.models import Agent, AgentPoolMembership
from lead_engine.services.locks import SourceLockRegistry, source_locks

logger = logging.getLogger(__name__)

Ring = List[Tuple[AgentPoolMembership, Agent]]


def pick_from_ring(ring: Ring) -> Optional[Agent]:
    """
    The flagged member if its agent is eligible, otherwise the next eligible
    member walking the ring forward from the flag (from the start when nothing
    is flagged). Keeps the ring self-healing when the flagged agent goes offline
    without starving the members after it.
    """
    if not ring:
        return None
    start = next((i for i, (m, _) in enumerate(ring) if m.is_next_in_rotation), 0)
    for offset in range(len(ring)):
        _, agent = ring[(start + offset) % len(ring)]
        if agent.is_eligible:
            return agent
    return None


def reflag(ring: Ring, target_agent_id: Optional[UUID]) -> None:
    """Leave exactly one flag, on ``target_agent_id``. Only rows whose flag changes are touched."""
    for membership, _ in ring:
        should_flag = membership.agent_id == target_agent_id
        if membership.is_next_in_rotation != should_flag:
            membership.is_next_in_rotation = should_flag


class RoundRobinSelector:
    """
    Agent pool registry and round-robin pointer for lead sources.

    ``next_agent`` and ``advance`` run inside the caller's transaction and
    expect the caller to hold the source lock; the pool management methods
    take the lock themselves and commit.
    """

    def __init__(self, db: AsyncSession, locks: Optional[SourceLockRegistry] = None):
        self.db = db
        self.locks = locks or source_locks

    # ---------------- Selection ----------------
    async def next_agent(self, source_id: UUID, for_update: bool = True) -> Optional[Agent]:
        ring = await get_ring(self.db, source_id, for_update=for_update)
        return pick_from_ring(ring)

    async def advance(self, source_id: UUID, from_agent_id: UUID) -> Optional[UUID]:
        """
        Move the flag from ``from_agent_id`` to its successor among all members
        (eligible or not). A non-member hands the flag to the first member.
        Returns the newly flagged agent id, or None for an empty pool.
        """
        ring = await get_ring(self.db, source_id, for_update=True)
        if not ring:
            return None
        ids = [m.agent_id for m, _ in ring]
        index = ids.index(from_agent_id) if from_agent_id in ids else -1
        successor = ids[(index + 1) % len(ids)]
        reflag(ring, successor)
        await self._flush()
        logger.debug("Source %s rotation advanced %s -> %s", source_id, from_agent_id, successor)
        return successor

    # ---------------- Pool management ----------------
    async def get_pool(self, source_id: UUID) -> Ring:
        await self._require_source(source_id)
        return await get_ring(self.db, source_id)

    async def add_member(self, source_id: UUID, agent_id: UUID) -> AgentPoolMembership:
        async with self.locks.get(source_id):
            await self._require_source(source_id)
            if await get_agent(self.db, agent_id) is None:
                raise UnknownAgent(f"Agent {agent_id} not found")
            if await get_membership(self.db, source_id, agent_id) is not None:
                raise AgentAlreadyInPool(f"Agent {agent_id} is already in the pool of source {source_id}")

            ring = await get_ring(self.db, source_id, for_update=True)
            membership = await create_membership(
                self.db, source_id, agent_id, is_next_in_rotation=not ring
            )
            await self._commit()
            logger.info("Agent %s added to pool of source %s", agent_id, source_id)
            return membership

    async def remove_member(self, source_id: UUID, agent_id: UUID) -> None:
        async with self.locks.get(source_id):
            membership = await get_membership(self.db, source_id, agent_id)
            if membership is None:
                raise AgentNotInPool(f"Agent {agent_id} is not in the pool of source {source_id}")
            was_flagged = membership.is_next_in_rotation
            await delete_membership(self.db, membership)

            ring = await get_ring(self.db, source_id, for_update=True)
            if ring and (was_flagged or not any(m.is_next_in_rotation for m, _ in ring)):
                # smallest remaining agent id takes over
                reflag(ring, ring[0][0].agent_id)
            await self._commit()
            logger.info("Agent %s removed from pool of source %s", agent_id, source_id)

    async def replace_pool(self, source_id: UUID, agent_ids: Iterable[UUID]) -> Ring:
        wanted = sorted(set(agent_ids))
        async with self.locks.get(source_id):
            await self._require_source(source_id)
            found = {a.agent_id for a in await get_agents(self.db, wanted)}
            missing = [str(a) for a in wanted if a not in found]
            if missing:
                raise UnknownAgent(f"Unknown agent(s): {', '.join(missing)}")

            await delete_pool(self.db, source_id)
            for position, agent_id in enumerate(wanted):
                await create_membership(self.db, source_id, agent_id, is_next_in_rotation=position == 0)
            await self._commit()
            logger.info("Pool of source %s replaced with %d agent(s)", source_id, len(wanted))
        return await get_ring(self.db, source_id)

    # ---------------- helpers ----------------
    async def _require_source(self, source_id: UUID) -> None:
        if await get_source(self.db, source_id) is None:
            raise SourceNotFound(f"Source {source_id} not found")

    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except StaleDataError as e:
            raise ConcurrentModification(str(e)) from e

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            raise ConcurrentModification(str(e)) from e
