# backend/booking_payments/services/booking_audit_service.py
"""
Shared status-transition guards and the booking audit trail.

Every state-changing service appends to booking_status_history through
this service, inside its own transaction, so the history row commits or
rolls back together with the booking update.
"""

from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.booking_status_history import BookingStatusHistory
from ..repositories.factory import RepositoryFactory
from ..repositories.status_history_repository import StatusHistoryRepository
from ..utils.time_utils import utc_now
from .base import BaseService

TERMINAL_PAYMENT_STATUSES = frozenset({PaymentStatus.CAPTURED.value, PaymentStatus.CANCELLED.value})

# Booking statuses from which funds must never be captured
NON_CAPTURABLE_BOOKING_STATUSES = frozenset(
    {
        BookingStatus.CANCELLED.value,
        BookingStatus.DECLINED.value,
        BookingStatus.COMPLETED.value,
    }
)


class BookingAuditService(BaseService):
    def __init__(self, db: Session, history_repository: Optional[StatusHistoryRepository] = None):
        super().__init__(db)
        self.history_repository = (
            history_repository or RepositoryFactory.create_status_history_repository(db)
        )

    def record(
        self, booking: Booking, status: str, notes: Optional[str], changed_by: Optional[str]
    ) -> BookingStatusHistory:
        """Append one history row. Does not commit."""
        entry = self.history_repository.create(
            booking_id=booking.id,
            status=status,
            notes=notes,
            changed_by=changed_by,
            changed_at=utc_now(),
        )
        self.logger.info(
            f"Booking {booking.booking_id} -> {status} by {changed_by}",
            extra={"booking_id": booking.booking_id, "history_status": status},
        )
        return entry

    def has_entry(self, booking: Booking, status: str) -> bool:
        return self.history_repository.has_status(booking.id, status)

    def history(self, booking: Booking) -> List[BookingStatusHistory]:
        return self.history_repository.list_for_booking(booking.id)

    @staticmethod
    def is_terminal_payment(payment_status: Optional[str]) -> bool:
        return payment_status in TERMINAL_PAYMENT_STATUSES

    @staticmethod
    def can_capture(booking: Booking) -> bool:
        """Funds may be taken only from an authorized hold on a live booking."""
        return (
            booking.payment_status == PaymentStatus.AUTHORIZED.value
            and booking.status not in NON_CAPTURABLE_BOOKING_STATUSES
        )
