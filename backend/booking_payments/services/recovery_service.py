# backend/booking_payments/services/recovery_service.py
"""
Recovery of declined bookings against the customer's saved card.

Unlike the booking-time hold, the recovery authorization is confirmed
off-session in the same call, so its outcome is known immediately and the
booking is updated synchronously instead of waiting for the webhook.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import (
    BookingNotFoundException,
    BusinessRuleException,
    InvalidBookingStatusException,
    NotFoundException,
    PaymentConsistencyException,
    PaymentProcessorException,
    ValidationException,
)
from ..integrations.stripe_gateway import (
    INTENT_CANCELED,
    AuthorizationHold,
    SavedCard,
    StripeGateway,
)
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.therapist import TherapistProfile
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.therapist_repository import TherapistRepository
from .base import BaseService
from .booking_audit_service import BookingAuditService
from .cancellation_service import RELEASABLE_PAYMENT_STATUSES
from .outcomes import NOT_ATTEMPTED, CompensatedOutcome, CompensationResult, StepResult

HISTORY_RECOVERED = "recovered"


@dataclass(frozen=True)
class RecoveryResult:
    booking: Booking
    therapist: TherapistProfile
    hold: AuthorizationHold
    card: SavedCard
    amount: Decimal
    previous_payment_intent_id: Optional[str]
    previous_release: CompensationResult


class RecoveryService(BaseService):
    def __init__(
        self,
        db: Session,
        gateway: StripeGateway,
        booking_repository: Optional[BookingRepository] = None,
        therapist_repository: Optional[TherapistRepository] = None,
        audit_service: Optional[BookingAuditService] = None,
    ):
        super().__init__(db)
        self.gateway = gateway
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.therapist_repository = (
            therapist_repository or RepositoryFactory.create_therapist_repository(db)
        )
        self.audit = audit_service or BookingAuditService(db)

    @BaseService.measure_operation("recover_declined_booking")
    def recover_declined_booking(
        self,
        booking_id: str,
        stripe_customer_id: str,
        amount: Decimal,
        new_therapist_id: str,
        recovered_by: str,
    ) -> RecoveryResult:
        """
        Re-authorize a declined booking on the customer's most recent saved card
        and assign it to ``new_therapist_id``.

        Raises:
            BookingNotFoundException: unknown booking
            InvalidBookingStatusException: booking is not declined
            ValidationException: the customer has no saved cards
            NotFoundException / BusinessRuleException: therapist missing or inactive
            PaymentProcessorException: the off-session authorization was declined
            PaymentConsistencyException: authorized but the booking update failed
                (carries the compensation outcome)
        """
        booking = self.booking_repository.get_by_booking_id(booking_id)
        if booking is None:
            raise BookingNotFoundException(booking_id)
        if booking.status != BookingStatus.DECLINED.value:
            raise InvalidBookingStatusException(
                f"Cannot recover booking with status: {booking.status}. "
                "Only declined bookings can be recovered.",
                booking_id=booking_id,
                current_status=booking.status,
            )

        cards = self.gateway.list_saved_cards(stripe_customer_id)
        if not cards:
            raise ValidationException(
                "No saved payment methods found for this customer",
                code="NO_SAVED_PAYMENT_METHODS",
                details={
                    "suggestion": "Customer will need to make a new booking with fresh card details"
                },
            )
        card = cards[0]

        therapist = self._get_active_therapist(new_therapist_id)

        hold = self.gateway.create_off_session_authorization(
            amount,
            customer_id=stripe_customer_id,
            payment_method_id=card.id,
            metadata={
                "booking_id": booking.booking_id,
                "recovered_from": BookingStatus.DECLINED.value,
                "original_therapist_id": booking.therapist_id,
                "new_therapist_id": new_therapist_id,
                "recovered_by": recovered_by,
            },
            description=f"Recovered Booking - {booking.booking_id}",
        )
        if not hold.requires_capture:
            self.logger.warning(
                f"Recovery authorization for {booking_id} ended in status {hold.status}"
            )
            raise PaymentProcessorException(
                hold.last_payment_error or "Card may have been declined or expired",
                category=PaymentProcessorException.AUTHORIZATION_FAILED,
                details={"payment_intent_status": hold.status},
            )

        previous_payment_intent_id = booking.payment_intent_id
        previous_payment_status = booking.payment_status

        try:
            self._apply_recovery(booking, therapist, hold, card, stripe_customer_id, recovered_by)
        except Exception as exc:
            outcome = CompensatedOutcome(
                primary=StepResult.failed("Failed to update booking"),
                compensation=self._release(hold.payment_intent_id),
            )
            self.logger.critical(
                "CRITICAL: Recovery authorized but booking update failed",
                extra={
                    "booking_id": booking_id,
                    "payment_intent_id": hold.payment_intent_id,
                    "compensation": outcome.compensation.describe(),
                },
                exc_info=True,
            )
            prometheus_metrics.inc_consistency_error("recovery")
            raise PaymentConsistencyException(
                "Failed to update booking",
                booking_id=booking_id,
                payment_intent_id=hold.payment_intent_id,
                outcome=outcome,
            ) from exc

        previous_release: CompensationResult = NOT_ATTEMPTED
        if (
            previous_payment_intent_id
            and previous_payment_intent_id != hold.payment_intent_id
            and previous_payment_status in RELEASABLE_PAYMENT_STATUSES
        ):
            previous_release = self._release(previous_payment_intent_id)

        return RecoveryResult(
            booking=booking,
            therapist=therapist,
            hold=hold,
            card=card,
            amount=amount,
            previous_payment_intent_id=previous_payment_intent_id,
            previous_release=previous_release,
        )

    def _get_active_therapist(self, therapist_id: str) -> TherapistProfile:
        therapist = self.therapist_repository.get_by_id(therapist_id)
        if therapist is None:
            raise NotFoundException(
                "New therapist not found",
                code="THERAPIST_NOT_FOUND",
                details={"therapist_id": therapist_id},
            )
        if not therapist.is_active:
            raise BusinessRuleException(
                "Selected therapist is not active",
                code="THERAPIST_INACTIVE",
                details={"therapist_id": therapist_id},
            )
        return therapist

    def _apply_recovery(
        self,
        booking: Booking,
        therapist: TherapistProfile,
        hold: AuthorizationHold,
        card: SavedCard,
        stripe_customer_id: str,
        recovered_by: str,
    ) -> None:
        with self.transaction():
            self.booking_repository.update(
                booking,
                therapist_id=therapist.id,
                status=BookingStatus.CONFIRMED.value,
                payment_intent_id=hold.payment_intent_id,
                payment_status=PaymentStatus.AUTHORIZED.value,
                stripe_customer_id=stripe_customer_id,
                stripe_payment_method_id=card.id,
            )
            self.audit.record(
                booking,
                HISTORY_RECOVERED,
                "Booking recovered from declined status. "
                f"New therapist: {therapist.full_name}. New payment authorized. "
                f"Recovered by: {recovered_by}",
                recovered_by,
            )
            self.audit.record(
                booking,
                BookingStatus.CONFIRMED.value,
                f"Booking confirmed with therapist: {therapist.full_name}",
                recovered_by,
            )

    def _release(self, payment_intent_id: str) -> StepResult:
        """Best-effort hold release whose outcome is returned to the caller."""
        try:
            hold = self.gateway.cancel(payment_intent_id)
        except PaymentProcessorException as e:
            self.logger.error(f"Failed to release payment intent {payment_intent_id}: {e.message}")
            return StepResult.failed(e.message)
        if hold.status != INTENT_CANCELED:
            return StepResult.failed(f"Payment intent status after cancel: {hold.status}")
        return StepResult.ok(f"Released {payment_intent_id}")
