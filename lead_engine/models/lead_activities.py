# models/lead_activities.py
from uuid import uuid4

from sqlalchemy import Column, String, Text, Uuid, ForeignKey, Index, CheckConstraint

from lead_engine.db.base_class import Base


class LeadActivity(Base):
    """Agent touch on a lead (call, email, ...). Re-arms no-activity rotation."""
    __tablename__ = "lead_activities"

    activity_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    lead_id = Column(Uuid(as_uuid=True), ForeignKey("leads.lead_id", ondelete="CASCADE"), nullable=False)
    agent_id = Column(Uuid(as_uuid=True), ForeignKey("agents.agent_id", ondelete="CASCADE"), nullable=False)
    activity_type = Column(String(20), nullable=False, default="note")
    notes = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "activity_type IN ('call','email','whatsapp','viewing','meeting','note')",
            name="chk_lead_activity_type",
        ),
        Index("idx_lead_activity_lead_time", "lead_id", "created_at"),
    )
