# lead_engine/crud/reports.py
from datetime import datetime
from typing import Dict, List
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.models import FollowUpTask, Lead, TERMINAL_STATUSES


async def _count(db: AsyncSession, stmt) -> int:
    result = await db.execute(stmt)
    return result.scalar() or 0


async def get_team_report(
    db: AsyncSession, team_ids: List[UUID], day_start: datetime, day_end: datetime, today_end: datetime
) -> Dict[str, int]:
    """
    Lead figures for a team: what happened on the reported day
    [day_start, day_end) and what is due on the following day [day_end, today_end).
    """
    team_leads = select(func.count(Lead.lead_id)).where(Lead.agent_id.in_(team_ids), Lead.deleted_at.is_(None))
    due_today = select(func.count(FollowUpTask.task_id)).where(
        FollowUpTask.agent_id.in_(team_ids),
        FollowUpTask.is_done.is_(False),
        FollowUpTask.due_at >= day_end,
        FollowUpTask.due_at < today_end,
    )

    return {
        "new_leads": await _count(db, team_leads.where(Lead.created_at >= day_start, Lead.created_at < day_end)),
        "conversions": await _count(
            db,
            team_leads.where(
                Lead.status == "converted", Lead.updated_at >= day_start, Lead.updated_at < day_end
            ),
        ),
        "active_leads": await _count(db, team_leads.where(Lead.status.notin_(TERMINAL_STATUSES))),
        "follow_ups_today": await _count(db, due_today),
        "meetings_today": await _count(db, due_today.where(FollowUpTask.task_type == "meeting")),
        "team_size": len(team_ids),
    }
