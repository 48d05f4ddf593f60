# models/assignment_history.py
from sqlalchemy import Column, String, Text, DateTime, Uuid, ForeignKey, Index
from uuid import uuid4

from lead_engine.db.base_class import Base, utcnow


class AssignmentHistoryEntry(Base):
    """Append-only audit row, one per ownership edge created."""
    __tablename__ = "assignment_history"

    history_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    lead_id = Column(Uuid(as_uuid=True), ForeignKey("leads.lead_id", ondelete="CASCADE"), nullable=False)
    from_agent_id = Column(Uuid(as_uuid=True), nullable=True)
    to_agent_id = Column(Uuid(as_uuid=True), nullable=False)
    actor_id = Column(Uuid(as_uuid=True), nullable=True)  # NULL = system
    assignment_type = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    changed_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_history_lead", "lead_id"),
        Index("idx_history_to_agent", "to_agent_id"),
        Index("idx_history_time", "changed_at"),
    )
