# models/lead.py
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Uuid, ForeignKey, CheckConstraint, Index
from uuid import uuid4

from lead_engine.db.base_class import Base

LEAD_STATUSES = (
    "new",
    "contacted",
    "no_answer",
    "not_interested",
    "follow_up",
    "meeting_scheduled",
    "converted",
    "closed",
)
TERMINAL_STATUSES = ("converted", "closed")


class Lead(Base):
    __tablename__ = "leads"

    lead_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    source_id = Column(Uuid(as_uuid=True), ForeignKey("sources.source_id", ondelete="SET NULL"), nullable=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=False)
    status = Column(String(30), nullable=False, default="new")

    # ownership
    agent_id = Column(Uuid(as_uuid=True), ForeignKey("agents.agent_id", ondelete="SET NULL"), nullable=True)
    assigned_by = Column(Uuid(as_uuid=True), nullable=True)
    assignment_count = Column(Integer, nullable=False, default=0)
    no_answer_count = Column(Integer, nullable=False, default=0)
    is_fresh = Column(Boolean, nullable=False, default=True)
    do_not_call = Column(Boolean, nullable=False, default=False)  # phone found in the DND registry

    deleted_at = Column(DateTime, nullable=True)  # soft delete

    __table_args__ = (
        CheckConstraint(
            "status IN ('new','contacted','no_answer','not_interested','follow_up',"
            "'meeting_scheduled','converted','closed')",
            name="chk_lead_status",
        ),
        CheckConstraint("assignment_count >= 0", name="chk_lead_assignment_count"),
        Index("idx_leads_status", "status"),
        Index("idx_leads_agent", "agent_id"),
        Index("idx_leads_source", "source_id"),
        Index("idx_leads_fresh", "is_fresh", "assignment_count"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
