# backend/booking_payments/services/authorization_service.py
"""
Authorization holds placed at booking time.

Creating the hold never promotes booking or payment status beyond
``authorization_pending``; the processor webhook is the only authority
that marks a hold ``authorized`` once the customer has confirmed it.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.constants import ACTOR_SYSTEM
from ..core.exceptions import (
    BookingNotFoundException,
    BusinessRuleException,
    ConflictException,
    InvalidBookingStatusException,
    NotFoundException,
    PaymentConsistencyException,
    PaymentProcessorException,
)
from ..integrations.stripe_gateway import INTENT_CANCELED, StripeGateway
from ..models.booking import Booking, BookingOccurrence, BookingStatus, PaymentStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from ..schemas.payment_schemas import BookingAuthorizationData
from .base import BaseService
from .booking_audit_service import BookingAuditService
from .outcomes import CompensatedOutcome, StepResult

HISTORY_OCCURRENCE_AUTHORIZED = "occurrence_authorized"
HISTORY_OCCURRENCE_AUTHORIZATION_FAILED = "occurrence_authorization_failed"

_INACTIVE_BOOKING_STATUSES = frozenset(
    {
        BookingStatus.CANCELLED.value,
        BookingStatus.DECLINED.value,
        BookingStatus.COMPLETED.value,
    }
)

# Payment statuses under which a new hold may replace the stored one
_REPLACEABLE_PAYMENT_STATUSES = frozenset(
    {
        PaymentStatus.PENDING.value,
        PaymentStatus.AUTHORIZATION_PENDING.value,
        PaymentStatus.AUTHORIZATION_FAILED.value,
        PaymentStatus.FAILED.value,
    }
)


@dataclass(frozen=True)
class AuthorizationResult:
    client_secret: Optional[str]
    payment_intent_id: str
    stripe_customer_id: Optional[str]
    amount: int
    currency: str
    attached_to_booking: bool = False


class AuthorizationService(BaseService):
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

    @staticmethod
    def build_metadata(booking_data: BookingAuthorizationData) -> Dict[str, Any]:
        return {
            "booking_id": booking_data.booking_id,
            "customer_email": booking_data.customer_email,
            "service_name": booking_data.service_name,
            "booking_time": booking_data.booking_time,
            "therapist_fee": booking_data.therapist_fee,
        }

    @BaseService.measure_operation("create_authorization")
    def create_authorization(
        self,
        amount: Decimal,
        booking_data: BookingAuthorizationData,
        currency: Optional[str] = None,
    ) -> AuthorizationResult:
        """
        Find or create the processor customer and place an authorize-only hold.

        When a booking row with ``booking_data.booking_id`` exists, the intent
        and customer ids are stored on it and its payment status becomes
        ``authorization_pending``.

        Raises:
            PaymentProcessorException: the processor rejected customer or intent creation
        """
        customer_id = self.gateway.find_or_create_customer(
            booking_data.customer_email, booking_data.customer_name
        )
        service_name = booking_data.service_name or "Massage"
        hold = self.gateway.create_authorization(
            amount,
            currency=currency,
            customer_id=customer_id,
            metadata=self.build_metadata(booking_data),
            description=f"Massage Booking Authorization - {service_name}",
        )
        self.log_operation(
            "authorization_created",
            booking_id=booking_data.booking_id,
            payment_intent_id=hold.payment_intent_id,
        )

        attached = self._attach_to_booking(
            booking_data.booking_id, hold.payment_intent_id, customer_id
        )
        return AuthorizationResult(
            client_secret=hold.client_secret,
            payment_intent_id=hold.payment_intent_id,
            stripe_customer_id=customer_id,
            amount=hold.amount,
            currency=hold.currency,
            attached_to_booking=attached,
        )

    def _attach_to_booking(
        self, booking_id: str, payment_intent_id: str, customer_id: Optional[str]
    ) -> bool:
        booking: Optional[Booking] = self.booking_repository.get_by_booking_id(booking_id)
        if booking is None:
            self.logger.info(f"No booking {booking_id} yet; hold {payment_intent_id} not attached")
            return False

        if booking.payment_status not in _REPLACEABLE_PAYMENT_STATUSES:
            self.logger.warning(
                f"Booking {booking_id} already has payment status {booking.payment_status}; "
                f"leaving hold {payment_intent_id} unattached"
            )
            return False

        changes: Dict[str, Any] = {
            "payment_intent_id": payment_intent_id,
            "payment_status": PaymentStatus.AUTHORIZATION_PENDING.value,
        }
        if customer_id:
            changes["stripe_customer_id"] = customer_id
        with self.transaction():
            self.booking_repository.update(booking, **changes)
        return True

    @BaseService.measure_operation("authorize_occurrence")
    def authorize_occurrence(
        self,
        booking_id: str,
        occurrence_number: int,
        amount: Decimal,
        currency: Optional[str] = None,
    ) -> BookingOccurrence:
        """
        Authorize one occurrence of a recurring series off-session against the
        parent booking's saved customer and card.

        A declined authorization is stored on the occurrence as
        ``authorization_failed`` before the processor error is raised.

        Raises:
            BookingNotFoundException / NotFoundException: unknown booking or occurrence
            BusinessRuleException: booking is not recurring or has no saved card
            InvalidBookingStatusException: booking or occurrence is no longer active
            ConflictException: occurrence already authorized or captured
            PaymentProcessorException: the processor declined the authorization
            PaymentConsistencyException: authorized but the occurrence update failed
        """
        booking = self.booking_repository.get_by_booking_id(booking_id)
        if booking is None:
            raise BookingNotFoundException(booking_id)
        if not booking.is_recurring:
            raise BusinessRuleException(
                "Booking is not part of a recurring series",
                code="BOOKING_NOT_RECURRING",
                details={"booking_id": booking_id},
            )
        if booking.status in _INACTIVE_BOOKING_STATUSES:
            raise InvalidBookingStatusException(
                f"Cannot authorize occurrences of a {booking.status} booking",
                booking_id=booking_id,
                current_status=booking.status,
            )

        occurrence = self.booking_repository.get_occurrence(booking, occurrence_number)
        if occurrence is None:
            raise NotFoundException(
                f"Occurrence {occurrence_number} not found for booking {booking_id}",
                code="OCCURRENCE_NOT_FOUND",
                details={"booking_id": booking_id, "occurrence_number": occurrence_number},
            )
        if occurrence.status in _INACTIVE_BOOKING_STATUSES:
            raise InvalidBookingStatusException(
                f"Cannot authorize a {occurrence.status} occurrence",
                booking_id=booking_id,
                current_status=occurrence.status,
            )
        if occurrence.payment_status in (
            PaymentStatus.AUTHORIZED.value,
            PaymentStatus.CAPTURED.value,
        ):
            raise ConflictException(
                f"Occurrence {occurrence_number} payment is already {occurrence.payment_status}",
                code="OCCURRENCE_ALREADY_AUTHORIZED",
                details={"booking_id": booking_id, "occurrence_number": occurrence_number},
            )
        if not booking.stripe_customer_id or not booking.stripe_payment_method_id:
            raise BusinessRuleException(
                "Customer ID and Payment Method ID are required for off-session payments",
                code="NO_SAVED_PAYMENT_METHOD",
                details={"booking_id": booking_id},
            )

        try:
            hold = self.gateway.create_off_session_authorization(
                amount,
                currency=currency,
                customer_id=booking.stripe_customer_id,
                payment_method_id=booking.stripe_payment_method_id,
                metadata={
                    "booking_id": booking.booking_id,
                    "occurrence_number": occurrence_number,
                    "service_name": booking.service_name,
                },
                description=(
                    f"Recurring Booking Occurrence {occurrence_number} - {booking.booking_id}"
                ),
            )
        except PaymentProcessorException as e:
            self._record_occurrence_failure(booking, occurrence, None, e.message)
            raise

        if not hold.requires_capture:
            message = hold.last_payment_error or "Card may have been declined or expired"
            self._record_occurrence_failure(booking, occurrence, hold.payment_intent_id, message)
            raise PaymentProcessorException(
                message,
                category=PaymentProcessorException.AUTHORIZATION_FAILED,
                details={"payment_intent_status": hold.status},
            )

        try:
            with self.transaction():
                self.booking_repository.update_occurrence(
                    occurrence,
                    payment_intent_id=hold.payment_intent_id,
                    payment_status=PaymentStatus.AUTHORIZED.value,
                    payment_error=None,
                )
                self.audit.record(
                    booking,
                    HISTORY_OCCURRENCE_AUTHORIZED,
                    f"Occurrence {occurrence_number} payment authorized",
                    ACTOR_SYSTEM,
                )
        except Exception as exc:
            compensation = self._release_quietly(hold.payment_intent_id)
            self.logger.critical(
                "CRITICAL: Occurrence authorized but occurrence update failed",
                extra={
                    "booking_id": booking_id,
                    "payment_intent_id": hold.payment_intent_id,
                    "compensation": compensation.describe(),
                },
                exc_info=True,
            )
            prometheus_metrics.inc_consistency_error("occurrence_authorization")
            raise PaymentConsistencyException(
                "Occurrence authorized but occurrence update failed",
                booking_id=booking_id,
                payment_intent_id=hold.payment_intent_id,
                outcome=CompensatedOutcome(
                    primary=StepResult.failed("Failed to update occurrence"),
                    compensation=compensation,
                ),
            ) from exc
        return occurrence

    def _record_occurrence_failure(
        self,
        booking: Booking,
        occurrence: BookingOccurrence,
        payment_intent_id: Optional[str],
        message: str,
    ) -> None:
        changes: Dict[str, Any] = {
            "payment_status": PaymentStatus.AUTHORIZATION_FAILED.value,
            "payment_error": message,
        }
        if payment_intent_id:
            changes["payment_intent_id"] = payment_intent_id
        with self.transaction():
            self.booking_repository.update_occurrence(occurrence, **changes)
            self.audit.record(
                booking,
                HISTORY_OCCURRENCE_AUTHORIZATION_FAILED,
                f"Occurrence {occurrence.occurrence_number} payment authorization failed: {message}",
                ACTOR_SYSTEM,
            )

    def _release_quietly(self, payment_intent_id: str) -> StepResult:
        try:
            hold = self.gateway.cancel(payment_intent_id)
        except PaymentProcessorException as e:
            self.logger.error(f"Failed to release payment intent {payment_intent_id}: {e.message}")
            return StepResult.failed(e.message)
        if hold.status != INTENT_CANCELED:
            return StepResult.failed(f"Payment intent status after cancel: {hold.status}")
        return StepResult.ok(f"Released {payment_intent_id}")
