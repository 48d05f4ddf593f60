# models/activity_log.py
from sqlalchemy import Column, String, Text, JSON, Uuid, Index
from sqlalchemy.dialects.postgresql import JSONB
from uuid import uuid4

from lead_engine.db.base_class import Base


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    log_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    event_type = Column(String(50), nullable=False)       # e.g. lead_assigned, cron_completed
    description = Column(Text, nullable=False)
    subject_type = Column(String(30), nullable=True)      # Lead, CronJob, Source
    subject_id = Column(String(64), nullable=True)
    causer_type = Column(String(30), nullable=False, default="System")  # System, Cron, Agent
    causer_id = Column(String(64), nullable=True)
    properties = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    __table_args__ = (
        Index("idx_activity_logs_event", "event_type"),
        Index("idx_activity_logs_subject", "subject_type", "subject_id"),
        Index("idx_activity_logs_time", "created_at"),
    )
