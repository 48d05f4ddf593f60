# models/source.py
from sqlalchemy import Column, String, Boolean, Uuid, Index
from uuid import uuid4

from lead_engine.db.base_class import Base


class Source(Base):
    __tablename__ = "sources"

    source_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False, unique=True)  # e.g. bayut, propertyFinder, website
    is_active = Column(Boolean, nullable=False, default=True)
    auto_distribution = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_sources_auto_distribution", "is_active", "auto_distribution"),
    )
