# backend/booking_payments/models/system_setting.py
from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func

from ..database import Base


class SystemSetting(Base):
    """Key/value settings editable from the back office (e.g. cancellation policy)."""

    __tablename__ = "system_settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), nullable=True, server_default=func.now(), onupdate=func.now()
    )
