# models/agent.py
from sqlalchemy import Column, String, Boolean, Uuid, ForeignKey, Index
from uuid import uuid4

from lead_engine.db.base_class import Base


class Agent(Base):
    __tablename__ = "agents"

    agent_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    full_name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(20), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)      # account status
    is_available = Column(Boolean, nullable=False, default=True)   # on shift / not on leave
    is_excluded = Column(Boolean, nullable=False, default=False)   # opted out of auto-assignment
    manager_id = Column(Uuid(as_uuid=True), ForeignKey("agents.agent_id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        Index("idx_agents_eligibility", "is_active", "is_available", "is_excluded"),
        Index("idx_agents_manager", "manager_id"),
    )

    @property
    def is_eligible(self) -> bool:
        return bool(self.is_active and self.is_available and not self.is_excluded)
