# lead_engine/crud/lead_activities.py
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.models import LeadActivity


# Create a new activity (flushed, committed by the caller)
async def create_activity(
    db: AsyncSession,
    lead_id: UUID,
    agent_id: UUID,
    activity_type: str,
    notes: Optional[str] = None,
) -> LeadActivity:
    activity = LeadActivity(
        lead_id=lead_id,
        agent_id=agent_id,
        activity_type=activity_type,
        notes=notes,
    )
    db.add(activity)
    await db.flush()
    return activity
