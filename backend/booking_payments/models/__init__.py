# backend/booking_payments/models/__init__.py
"""
SQLAlchemy models.

Importing this package registers every table on ``Base.metadata``.
"""

from .booking import Booking, BookingOccurrence, BookingStatus, PaymentStatus
from .booking_status_history import BookingStatusHistory
from .system_setting import SystemSetting
from .therapist import TherapistProfile

__all__ = [
    "Booking",
    "BookingOccurrence",
    "BookingStatus",
    "BookingStatusHistory",
    "PaymentStatus",
    "SystemSetting",
    "TherapistProfile",
]
