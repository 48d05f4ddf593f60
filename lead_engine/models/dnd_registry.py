# models/dnd_registry.py
import re

from sqlalchemy import Column, String, Boolean, Uuid
from uuid import uuid4

from lead_engine.db.base_class import Base


def normalize_phone(phone: str) -> str:
    """Digits only, so '+971 50-123 4567' and '971501234567' match."""
    return re.sub(r"\D", "", phone or "")


class DndEntry(Base):
    """Do-not-disturb registry: phone numbers that must never be called."""
    __tablename__ = "dnd_registry"

    entry_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    phone_number = Column(String(20), unique=True, nullable=False)  # normalized
    reason = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
