# backend/booking_payments/repositories/booking_repository.py
"""
Booking Repository

Data access for bookings and their recurring-series occurrences. Lookups are
keyed by the human-facing ``booking_id`` because that is what clients,
emails and processor metadata carry.
"""

import logging
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingOccurrence
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def get_by_booking_id(self, booking_id: str) -> Optional[Booking]:
        return self.find_one_by(booking_id=booking_id)

    def get_by_booking_and_intent(
        self, booking_id: str, payment_intent_id: str
    ) -> Optional[Booking]:
        """Booking whose current hold is ``payment_intent_id``; stale intents do not match."""
        return self.find_one_by(booking_id=booking_id, payment_intent_id=payment_intent_id)

    def transition_status(self, booking: Booking, expected_status: str, **changes: Any) -> bool:
        """
        Apply ``changes`` only if the row still has ``expected_status``.

        The status check happens inside the UPDATE statement, so of two
        concurrent callers only one sees ``True``.
        """
        try:
            updated = (
                self.db.query(Booking)
                .filter(Booking.id == booking.id, Booking.status == expected_status)
                .update(changes, synchronize_session=False)
            )
            self.db.flush()
            self.db.refresh(booking)
            return bool(updated)
        except SQLAlchemyError as e:
            self.logger.error(f"Error transitioning booking {booking.booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to update booking status: {str(e)}") from e

    def get_occurrences(self, booking: Booking) -> List[BookingOccurrence]:
        try:
            return (
                self.db.query(BookingOccurrence)
                .filter(BookingOccurrence.booking_id == booking.id)
                .order_by(BookingOccurrence.occurrence_number)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading occurrences for {booking.booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to load occurrences: {str(e)}") from e

    def get_occurrence(
        self, booking: Booking, occurrence_number: int
    ) -> Optional[BookingOccurrence]:
        try:
            return (
                self.db.query(BookingOccurrence)
                .filter(
                    BookingOccurrence.booking_id == booking.id,
                    BookingOccurrence.occurrence_number == occurrence_number,
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading occurrence {occurrence_number}: {str(e)}")
            raise RepositoryException(f"Failed to load occurrence: {str(e)}") from e

    def update_occurrence(self, occurrence: BookingOccurrence, **changes: Any) -> BookingOccurrence:
        try:
            for key, value in changes.items():
                setattr(occurrence, key, value)
            self.db.flush()
            return occurrence
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating occurrence {occurrence.id}: {str(e)}")
            raise RepositoryException(f"Failed to update occurrence: {str(e)}") from e
