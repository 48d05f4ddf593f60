# models/setting.py
from sqlalchemy import Column, String, Text, CheckConstraint

from lead_engine.db.base_class import Base


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    type = Column(String(10), nullable=False, default="string")
    category = Column(String(50), nullable=True)  # automation, office_hours

    __table_args__ = (
        CheckConstraint("type IN ('string','boolean','integer','float','json')", name="chk_setting_type"),
    )
