# backend/booking_payments/services/completion_service.py
"""
Capture of an authorized hold when a job is marked complete.

The capture is irreversible, so the local update only runs after the
processor confirms success, and a failure of that update is reported as
a PaymentConsistencyException with a CRITICAL log instead of a success.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import (
    ConflictException,
    InvalidBookingStatusException,
    PaymentConsistencyException,
    PaymentIntentMismatchException,
    PaymentProcessorException,
)
from ..integrations.stripe_gateway import INTENT_SUCCEEDED, StripeGateway
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from ..utils.time_utils import utc_now
from .base import BaseService
from .booking_audit_service import BookingAuditService


@dataclass(frozen=True)
class CaptureResult:
    payment_intent_id: str
    amount_captured: Optional[int]
    booking_status: str
    payment_status: str


class CompletionService(BaseService):
    def __init__(
        self,
        db: Session,
        gateway: StripeGateway,
        booking_repository: Optional[BookingRepository] = None,
        audit_service: Optional[BookingAuditService] = None,
    ):
        super().__init__(db)
        self.gateway = gateway
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.audit = audit_service or BookingAuditService(db)

    @BaseService.measure_operation("capture_completed_booking")
    def capture_completed_booking(
        self, booking_id: str, payment_intent_id: str, completed_by: str
    ) -> CaptureResult:
        """
        Capture the booking's hold and mark the booking completed.

        Raises:
            PaymentIntentMismatchException: no booking with this id and current intent
            ConflictException: payment already captured
            InvalidBookingStatusException: booking or payment state does not allow capture
            PaymentProcessorException: capture rejected or not confirmed by the processor
            PaymentConsistencyException: captured at the processor but the booking update failed
        """
        booking = self.booking_repository.get_by_booking_and_intent(booking_id, payment_intent_id)
        if booking is None:
            raise PaymentIntentMismatchException(booking_id, payment_intent_id)

        if booking.payment_status == PaymentStatus.CAPTURED.value:
            raise ConflictException(
                "Payment has already been captured",
                code="PAYMENT_ALREADY_CAPTURED",
                details={"booking_id": booking_id, "payment_intent_id": payment_intent_id},
            )
        if not self.audit.can_capture(booking):
            raise InvalidBookingStatusException(
                f"Cannot capture payment for booking with status {booking.status} "
                f"and payment status {booking.payment_status}",
                booking_id=booking_id,
                current_status=booking.status,
            )

        hold = self.gateway.capture(payment_intent_id)
        if hold.status != INTENT_SUCCEEDED:
            raise PaymentProcessorException(
                f"Payment capture failed. Status: {hold.status}",
                category=PaymentProcessorException.PROCESSOR_ERROR,
                details={"payment_intent_status": hold.status},
            )

        try:
            self._mark_completed(booking, completed_by)
        except Exception as exc:
            self.logger.critical(
                "CRITICAL: Payment captured but booking update failed",
                extra={
                    "booking_id": booking_id,
                    "payment_intent_id": payment_intent_id,
                    "completed_by": completed_by,
                },
                exc_info=True,
            )
            prometheus_metrics.inc_consistency_error("capture")
            raise PaymentConsistencyException(
                "Payment captured but booking update failed",
                booking_id=booking_id,
                payment_intent_id=payment_intent_id,
            ) from exc

        return CaptureResult(
            payment_intent_id=payment_intent_id,
            amount_captured=hold.amount_received,
            booking_status=booking.status,
            payment_status=booking.payment_status,
        )

    def _mark_completed(self, booking: Booking, completed_by: str) -> None:
        with self.transaction():
            # The capture webhook may have completed the booking while the capture call ran
            self.db.refresh(booking)
            if booking.payment_status == PaymentStatus.CAPTURED.value:
                self.logger.info(f"Booking {booking.booking_id} already completed by webhook")
                if not booking.completed_by:
                    self.booking_repository.update(booking, completed_by=completed_by)
                return
            self.booking_repository.update(
                booking,
                status=BookingStatus.COMPLETED.value,
                payment_status=PaymentStatus.CAPTURED.value,
                completed_at=utc_now(),
                completed_by=completed_by,
            )
            self.audit.record(
                booking,
                BookingStatus.COMPLETED.value,
                f"Job completed and payment captured. Completed by: {completed_by}",
                completed_by,
            )
