# backend/booking_payments/models/booking_status_history.py
"""
Append-only audit trail of booking transitions.

Rows are never updated or deleted. The table doubles as the record of
"has this transition already happened" for idempotent webhook handling.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class BookingStatusHistory(Base):
    __tablename__ = "booking_status_history"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String(32), nullable=False)
    notes = Column(Text, nullable=True)
    changed_by = Column(String(255), nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    booking = relationship("Booking", back_populates="status_history")

    __table_args__ = (Index("ix_booking_status_history_booking_status", "booking_id", "status"),)

    def __repr__(self) -> str:
        return f"<BookingStatusHistory {self.booking_id} -> {self.status} by {self.changed_by}>"
