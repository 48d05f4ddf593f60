# models/agent_pool_membership.py
from sqlalchemy import Column, Boolean, Integer, Uuid, ForeignKey, UniqueConstraint, Index
from uuid import uuid4

from lead_engine.db.base_class import Base


class AgentPoolMembership(Base):
    """One agent's slot in a source's round-robin ring. Ring order is agent_id ascending."""
    __tablename__ = "agent_pool_memberships"

    membership_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    source_id = Column(Uuid(as_uuid=True), ForeignKey("sources.source_id", ondelete="CASCADE"), nullable=False)
    agent_id = Column(Uuid(as_uuid=True), ForeignKey("agents.agent_id", ondelete="CASCADE"), nullable=False)
    is_next_in_rotation = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("source_id", "agent_id", name="uq_pool_source_agent"),
        Index("idx_pool_source_order", "source_id", "agent_id"),
        Index("idx_pool_next", "source_id", "is_next_in_rotation"),
    )

    __mapper_args__ = {"version_id_col": version}
