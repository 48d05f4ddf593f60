# lead_engine/crud/assignment_history.py
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.db.base_class import utcnow
from lead_engine.models import AssignmentHistoryEntry


# ---------------- CREATE ----------------
def create_history_entry(
    db: AsyncSession,
    lead_id: UUID,
    to_agent_id: UUID,
    assignment_type: str,
    from_agent_id: Optional[UUID] = None,
    actor_id: Optional[UUID] = None,
    reason: Optional[str] = None,
) -> AssignmentHistoryEntry:
    entry = AssignmentHistoryEntry(
        lead_id=lead_id,
        from_agent_id=from_agent_id,
        to_agent_id=to_agent_id,
        actor_id=actor_id,
        assignment_type=assignment_type,
        reason=reason,
        changed_at=utcnow(),
    )
    db.add(entry)
    return entry


# ---------------- READ ----------------
async def get_history_by_lead(db: AsyncSession, lead_id: UUID) -> List[AssignmentHistoryEntry]:
    result = await db.execute(
        select(AssignmentHistoryEntry)
        .where(AssignmentHistoryEntry.lead_id == lead_id)
        .order_by(AssignmentHistoryEntry.changed_at.desc())
    )
    return list(result.scalars().all())


async def count_history_by_lead(db: AsyncSession, lead_id: UUID) -> int:
    result = await db.execute(
        select(func.count(AssignmentHistoryEntry.history_id)).where(AssignmentHistoryEntry.lead_id == lead_id)
    )
    return result.scalar() or 0
