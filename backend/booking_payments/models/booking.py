# backend/booking_payments/models/booking.py
"""
Booking model for the mobile massage platform.

A booking carries two related but independent state machines:

- ``status`` is the booking lifecycle (requested -> confirmed -> completed,
  or cancelled / declined).
- ``payment_status`` is the card-hold lifecycle (authorization_pending ->
  authorized -> captured, or failed / cancelled).

A booking can be ``confirmed`` while its payment is merely ``authorized``.
"""

from enum import Enum
import logging

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    REQUESTED = "requested"  # Awaiting therapist acceptance
    CONFIRMED = "confirmed"  # Therapist accepted
    COMPLETED = "completed"  # Job done, payment captured
    CANCELLED = "cancelled"
    DECLINED = "declined"  # Therapist rejected, eligible for recovery


class PaymentStatus(str, Enum):
    """Card hold lifecycle statuses."""

    PENDING = "pending"
    AUTHORIZATION_PENDING = "authorization_pending"  # Intent created, not yet confirmed
    AUTHORIZED = "authorized"  # Funds held
    AUTHORIZATION_FAILED = "authorization_failed"
    FAILED = "failed"
    CAPTURED = "captured"  # Funds taken
    CANCELLED = "cancelled"  # Hold released


BOOKING_STATUS_VALUES = tuple(s.value for s in BookingStatus)
PAYMENT_STATUS_VALUES = tuple(s.value for s in PaymentStatus)


def _in_clause(column: str, values: tuple) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class Booking(Base):
    """
    A customer's booking and the processor references for its card hold.

    ``booking_id`` is the human-facing reference used in emails, URLs and
    webhook metadata; ``id`` is the internal row id.
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(64), nullable=False, unique=True, index=True)

    # Customer
    customer_email = Column(String(255), nullable=True)
    customer_name = Column(String(255), nullable=True)

    # Scheduling
    service_name = Column(String(255), nullable=True)
    therapist_id = Column(String(26), ForeignKey("therapist_profiles.id"), nullable=True)
    booking_time = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    address = Column(Text, nullable=True)

    # Financial
    price = Column(Numeric(10, 2), nullable=True)
    therapist_fee = Column(Numeric(10, 2), nullable=True)
    payment_intent_id = Column(String(255), nullable=True, index=True)
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_payment_method_id = Column(String(255), nullable=True)

    # Lifecycle
    status = Column(String(20), nullable=False, default=BookingStatus.REQUESTED.value)
    payment_status = Column(String(32), nullable=False, default=PaymentStatus.PENDING.value)

    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(255), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    completed_by = Column(String(255), nullable=True)

    is_recurring = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=True, server_default=func.now(), onupdate=func.now()
    )

    therapist = relationship("TherapistProfile", lazy="joined")
    occurrences = relationship(
        "BookingOccurrence",
        back_populates="booking",
        order_by="BookingOccurrence.occurrence_number",
        cascade="all, delete-orphan",
    )
    status_history = relationship(
        "BookingStatusHistory",
        back_populates="booking",
        order_by="BookingStatusHistory.changed_at",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(_in_clause("status", BOOKING_STATUS_VALUES), name="ck_bookings_status"),
        CheckConstraint(
            _in_clause("payment_status", PAYMENT_STATUS_VALUES),
            name="ck_bookings_payment_status",
        ),
        Index("ix_bookings_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking {self.booking_id} status={self.status} "
            f"payment_status={self.payment_status}>"
        )


class BookingOccurrence(Base):
    """One instance of a recurring series, independently schedulable and payable."""

    __tablename__ = "booking_occurrences"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    occurrence_number = Column(Integer, nullable=False)
    booking_time = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.REQUESTED.value)
    payment_intent_id = Column(String(255), nullable=True)
    payment_status = Column(String(32), nullable=False, default=PaymentStatus.PENDING.value)
    payment_error = Column(Text, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), nullable=True, server_default=func.now(), onupdate=func.now()
    )

    booking = relationship("Booking", back_populates="occurrences")

    __table_args__ = (
        UniqueConstraint("booking_id", "occurrence_number", name="uq_booking_occurrence_number"),
    )

    def __repr__(self) -> str:
        return f"<BookingOccurrence {self.booking_id}#{self.occurrence_number} {self.status}>"
