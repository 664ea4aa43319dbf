# backend/booking_payments/repositories/status_history_repository.py
"""Append-only access to booking_status_history."""

from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking_status_history import BookingStatusHistory
from .base_repository import BaseRepository


class StatusHistoryRepository(BaseRepository[BookingStatusHistory]):
    """
    Repository for status history rows.

    Only inserts and reads are exposed; history is never edited.
    """

    def __init__(self, db: Session):
        super().__init__(db, BookingStatusHistory)

    def has_status(self, booking_row_id: str, status: str) -> bool:
        try:
            return (
                self.db.query(BookingStatusHistory.id)
                .filter(
                    BookingStatusHistory.booking_id == booking_row_id,
                    BookingStatusHistory.status == status,
                )
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking history for {booking_row_id}: {str(e)}")
            raise RepositoryException(f"Failed to check status history: {str(e)}") from e

    def list_for_booking(self, booking_row_id: str) -> List[BookingStatusHistory]:
        try:
            return (
                self.db.query(BookingStatusHistory)
                .filter(BookingStatusHistory.booking_id == booking_row_id)
                .order_by(BookingStatusHistory.changed_at, BookingStatusHistory.id)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing history for {booking_row_id}: {str(e)}")
            raise RepositoryException(f"Failed to list status history: {str(e)}") from e
