# models/lead_assignment.py
from sqlalchemy import Column, String, Boolean, DateTime, Uuid, ForeignKey, CheckConstraint, Index
from uuid import uuid4

from lead_engine.db.base_class import Base, utcnow


class LeadAssignment(Base):
    """
    Ownership edge between a lead and an agent.
    Open while closed_at is NULL; at most one open edge per (lead, agent).
    """
    __tablename__ = "lead_assignments"

    assignment_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    lead_id = Column(Uuid(as_uuid=True), ForeignKey("leads.lead_id", ondelete="CASCADE"), nullable=False)
    agent_id = Column(Uuid(as_uuid=True), ForeignKey("agents.agent_id", ondelete="CASCADE"), nullable=False)
    assigned_at = Column(DateTime, nullable=False, default=utcnow)
    assignment_type = Column(String(20), nullable=False, default="manual")
    acceptance_state = Column(String(10), nullable=False, default="pending")
    is_primary = Column(Boolean, nullable=False, default=True)
    last_activity_at = Column(DateTime, nullable=True)
    loop_guard = Column(Boolean, nullable=False, default=False)
    reason = Column(String(255), nullable=True)
    closed_at = Column(DateTime, nullable=True)
    close_reason = Column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("acceptance_state IN ('pending','accepted','rejected')", name="chk_assignment_acceptance"),
        CheckConstraint(
            "assignment_type IN ('round_robin','manual','multi_agent','reassignment','random','fallback')",
            name="chk_assignment_type",
        ),
        Index("idx_assignment_agent", "agent_id"),
        Index("idx_assignment_lead_open", "lead_id", "closed_at"),
        Index("idx_assignment_time", "assigned_at"),
        Index("idx_assignment_rotation", "closed_at", "loop_guard", "last_activity_at"),
    )

    @property
    def is_open(self) -> bool:
        return self.closed_at is None
