# lead_engine/services/activity_log.py
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.crud.activity_log import create_log
from lead_engine.models import ActivityLog

logger = logging.getLogger(__name__)


class ActivityLogService:
    """Writes business events to the activity log inside the caller's transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def record(
        self,
        event_type: str,
        description: str,
        subject_type: Optional[str] = None,
        subject_id: Any = None,
        causer_type: str = "System",
        causer_id: Any = None,
        properties: Optional[Dict[str, Any]] = None,
    ) -> ActivityLog:
        return create_log(
            self.db,
            event_type=event_type,
            description=description,
            subject_type=subject_type,
            subject_id=str(subject_id) if subject_id is not None else None,
            causer_type=causer_type,
            causer_id=str(causer_id) if causer_id is not None else None,
            properties=properties,
        )

    def log_cron_execution(
        self, job_name: str, status: str, properties: Optional[Dict[str, Any]] = None
    ) -> ActivityLog:
        # status: started, completed, failed, skipped
        return self.record(
            event_type=f"cron_{status}",
            description=f"Cron job '{job_name}' {status}",
            subject_type="CronJob",
            subject_id=job_name,
            causer_type="Cron",
            properties=properties,
        )
