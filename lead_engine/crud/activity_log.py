# lead_engine/crud/activity_log.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.models import ActivityLog


def create_log(
    db: AsyncSession,
    event_type: str,
    description: str,
    subject_type: Optional[str] = None,
    subject_id: Optional[str] = None,
    causer_type: str = "System",
    causer_id: Optional[str] = None,
    properties: Optional[dict] = None,
) -> ActivityLog:
    log = ActivityLog(
        event_type=event_type,
        description=description,
        subject_type=subject_type,
        subject_id=subject_id,
        causer_type=causer_type,
        causer_id=causer_id,
        properties=properties,
    )
    db.add(log)
    return log


async def get_recent_logs(
    db: AsyncSession,
    limit: int = 50,
    offset: int = 0,
    event_type: Optional[str] = None,
    subject_type: Optional[str] = None,
    subject_id: Optional[str] = None,
    since: Optional[datetime] = None,
) -> List[ActivityLog]:
    filters = []
    if event_type:
        filters.append(ActivityLog.event_type == event_type)
    if subject_type:
        filters.append(ActivityLog.subject_type == subject_type)
    if subject_id:
        filters.append(ActivityLog.subject_id == subject_id)
    if since:
        filters.append(ActivityLog.created_at >= since)

    result = await db.execute(
        select(ActivityLog)
        .where(*filters)
        .order_by(ActivityLog.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())
