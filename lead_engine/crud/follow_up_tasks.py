# lead_engine/crud/follow_up_tasks.py
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.models import FollowUpTask, Lead


# Create a new follow-up task
async def create_task(
    db: AsyncSession,
    lead_id: UUID,
    agent_id: UUID,
    task_type: str,
    due_at: datetime,
    notes: Optional[str] = None,
) -> FollowUpTask:
    task = FollowUpTask(
        lead_id=lead_id,
        agent_id=agent_id,
        task_type=task_type,
        due_at=due_at,
        notes=notes,
    )
    db.add(task)
    await db.flush()
    return task


# Open tasks of a type due inside [window_start, window_end)
async def get_due_tasks(
    db: AsyncSession, task_type: str, window_start: datetime, window_end: datetime, limit: int
):
    stmt = (
        select(
            FollowUpTask.task_id,
            FollowUpTask.lead_id,
            FollowUpTask.agent_id,
            FollowUpTask.due_at,
            Lead.first_name,
            Lead.last_name,
        )
        .join(Lead, Lead.lead_id == FollowUpTask.lead_id)
        .where(
            and_(
                FollowUpTask.task_type == task_type,
                FollowUpTask.is_done.is_(False),
                FollowUpTask.due_at >= window_start,
                FollowUpTask.due_at < window_end,
                Lead.deleted_at.is_(None),
            )
        )
        .order_by(FollowUpTask.due_at.asc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return result.mappings().all()
