# models/follow_up_tasks.py
from uuid import uuid4

from sqlalchemy import Column, String, Boolean, DateTime, Text, Uuid, ForeignKey, Index, CheckConstraint

from lead_engine.db.base_class import Base

class FollowUpTask(Base):
    """A scheduled call or meeting; the reminder jobs ping the agent shortly before it is due."""
    __tablename__ = "follow_up_tasks"

    task_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    lead_id = Column(Uuid(as_uuid=True), ForeignKey("leads.lead_id", ondelete="CASCADE"), nullable=False)
    agent_id = Column(Uuid(as_uuid=True), ForeignKey("agents.agent_id", ondelete="CASCADE"), nullable=False)
    task_type = Column(String(20), nullable=False)
    due_at = Column(DateTime, nullable=False)
    is_done = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("task_type IN ('call','meeting')", name="chk_follow_up_type"),
        Index("idx_follow_up_due", "task_type", "is_done", "due_at"),
    )
