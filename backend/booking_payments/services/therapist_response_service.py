# backend/booking_payments/services/therapist_response_service.py
"""
Therapist accept / decline of a requested booking.

Declining is what makes a booking eligible for RecoveryService. The
hold is left alone in both cases: accepting keeps it for capture on
completion, declining keeps it until recovery replaces it.
"""

from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import (
    BookingNotFoundException,
    BusinessRuleException,
    ConflictException,
    NotFoundException,
)
from ..models.booking import Booking, BookingStatus
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.therapist_repository import TherapistRepository
from .base import BaseService
from .booking_audit_service import BookingAuditService

ACTION_ACCEPT = "accept"
ACTION_DECLINE = "decline"

_TARGET_STATUS = {
    ACTION_ACCEPT: BookingStatus.CONFIRMED.value,
    ACTION_DECLINE: BookingStatus.DECLINED.value,
}


class TherapistResponseService(BaseService):
    def __init__(
        self,
        db: Session,
        booking_repository: Optional[BookingRepository] = None,
        therapist_repository: Optional[TherapistRepository] = None,
        audit_service: Optional[BookingAuditService] = None,
    ):
        super().__init__(db)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.therapist_repository = (
            therapist_repository or RepositoryFactory.create_therapist_repository(db)
        )
        self.audit = audit_service or BookingAuditService(db)

    @BaseService.measure_operation("respond_to_booking")
    def respond(
        self, booking_id: str, therapist_id: str, action: str, reason: Optional[str] = None
    ) -> Booking:
        """
        Move a ``requested`` booking to ``confirmed`` or ``declined``.

        Raises:
            BookingNotFoundException / NotFoundException: unknown booking or therapist
            BusinessRuleException: booking assigned to another therapist
            ConflictException: booking is no longer ``requested`` (including a
                concurrent response that won the race)
        """
        if action not in _TARGET_STATUS:
            raise BusinessRuleException(f"Unknown action: {action}", code="INVALID_ACTION")

        booking = self.booking_repository.get_by_booking_id(booking_id)
        if booking is None:
            raise BookingNotFoundException(booking_id)

        therapist = self.therapist_repository.get_by_id(therapist_id)
        if therapist is None:
            raise NotFoundException(
                "Therapist not found",
                code="THERAPIST_NOT_FOUND",
                details={"therapist_id": therapist_id},
            )
        if booking.therapist_id and booking.therapist_id != therapist_id:
            raise BusinessRuleException(
                "Booking is assigned to a different therapist",
                code="THERAPIST_MISMATCH",
                details={"booking_id": booking_id},
            )

        target = _TARGET_STATUS[action]
        with self.transaction():
            applied = self.booking_repository.transition_status(
                booking,
                BookingStatus.REQUESTED.value,
                status=target,
                therapist_id=therapist_id,
            )
            if not applied:
                raise ConflictException(
                    f"Booking is no longer awaiting a response (current status: {booking.status})",
                    code="BOOKING_ALREADY_RESPONDED",
                    details={"booking_id": booking_id, "status": booking.status},
                )

            if action == ACTION_ACCEPT:
                notes = f"Booking accepted by therapist: {therapist.full_name}"
            else:
                notes = f"Booking declined by therapist: {therapist.full_name}"
                if reason:
                    notes = f"{notes}. Reason: {reason}"
            self.audit.record(booking, target, notes, therapist_id)

        self.logger.info(f"Booking {booking_id} {target} by therapist {therapist_id}")
        return booking
