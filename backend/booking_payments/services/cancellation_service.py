# backend/booking_payments/services/cancellation_service.py
"""
Release of authorization holds on cancellation.

Two entry points:

- ``cancel_authorization``: admin/therapist path keyed by booking id and
  the booking's current payment intent.
- ``cancel_by_customer``: the emailed self-service link, which enforces
  the cancellation window and never touches a booking it refuses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import (
    ACTOR_CUSTOMER,
    SETTING_BUSINESS_PHONE,
    SETTING_CANCELLATION_HOURS_PRIOR,
)
from ..core.exceptions import (
    BookingNotFoundException,
    ConflictException,
    PaymentConsistencyException,
    PaymentIntentMismatchException,
    PaymentProcessorException,
)
from ..integrations.stripe_gateway import INTENT_CANCELED, StripeGateway
from ..models.booking import Booking, BookingOccurrence, BookingStatus, PaymentStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.system_setting_repository import SystemSettingRepository
from ..utils.time_utils import hours_between, utc_now
from .base import BaseService
from .booking_audit_service import BookingAuditService

CUSTOMER_CANCELLATION_REASON = "Cancelled by customer via email link"

# Payment statuses that still hold (or may still hold) funds on the card
RELEASABLE_PAYMENT_STATUSES = frozenset(
    {PaymentStatus.AUTHORIZED.value, PaymentStatus.AUTHORIZATION_PENDING.value}
)

OUTCOME_CANCELLED = "cancelled"
OUTCOME_NOT_ALLOWED = "not_allowed"
OUTCOME_ALREADY_CANCELLED = "already_cancelled"


@dataclass(frozen=True)
class CancellationPolicy:
    hours_prior: int
    business_phone: str


@dataclass(frozen=True)
class AuthorizationCancellationResult:
    payment_intent_id: str
    booking_status: str
    payment_status: str
    message: str
    already_cancelled: bool = False


@dataclass
class CustomerCancellationOutcome:
    outcome: str
    booking: Booking
    policy: CancellationPolicy
    hours_until_booking: Optional[float] = None
    payment_released: bool = False
    occurrences_cancelled: int = 0
    occurrence_release_failures: List[str] = field(default_factory=list)

    @property
    def is_recurring(self) -> bool:
        return bool(self.booking.is_recurring)


class CancellationService(BaseService):
    def __init__(
        self,
        db: Session,
        gateway: StripeGateway,
        booking_repository: Optional[BookingRepository] = None,
        setting_repository: Optional[SystemSettingRepository] = None,
        audit_service: Optional[BookingAuditService] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(db)
        self.gateway = gateway
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.setting_repository = (
            setting_repository or RepositoryFactory.create_system_setting_repository(db)
        )
        self.audit = audit_service or BookingAuditService(db)
        self.clock = clock

    # Admin / therapist path

    @BaseService.measure_operation("cancel_authorization")
    def cancel_authorization(
        self,
        booking_id: str,
        payment_intent_id: str,
        cancelled_by: str,
        reason: Optional[str] = None,
    ) -> AuthorizationCancellationResult:
        """
        Release the booking's hold and cancel the booking.

        A booking whose payment is already cancelled returns the
        already-cancelled result without calling the processor again.

        Raises:
            PaymentIntentMismatchException: no booking with this id and current intent
            ConflictException: funds were already captured
            PaymentProcessorException: the processor refused or did not confirm the release
            PaymentConsistencyException: released at the processor but the booking update failed
        """
        booking = self.booking_repository.get_by_booking_and_intent(booking_id, payment_intent_id)
        if booking is None:
            raise PaymentIntentMismatchException(booking_id, payment_intent_id)

        if booking.payment_status == PaymentStatus.CANCELLED.value:
            self.logger.info(f"Authorization for booking {booking_id} already cancelled")
            return AuthorizationCancellationResult(
                payment_intent_id=payment_intent_id,
                booking_status=booking.status,
                payment_status=booking.payment_status,
                message="Payment authorization already cancelled",
                already_cancelled=True,
            )
        if booking.payment_status == PaymentStatus.CAPTURED.value:
            raise ConflictException(
                "Payment has already been captured and cannot be released",
                code="PAYMENT_ALREADY_CAPTURED",
                details={"booking_id": booking_id, "payment_intent_id": payment_intent_id},
            )

        self._release_hold(payment_intent_id)

        reason_text = reason or "No reason provided"
        try:
            with self.transaction():
                self.booking_repository.update(
                    booking,
                    status=BookingStatus.CANCELLED.value,
                    payment_status=PaymentStatus.CANCELLED.value,
                    cancelled_at=self.clock(),
                    cancelled_by=cancelled_by,
                    cancellation_reason=reason_text,
                )
                self.audit.record(
                    booking,
                    BookingStatus.CANCELLED.value,
                    "Booking cancelled and payment authorization released. "
                    f"Reason: {reason_text}. Cancelled by: {cancelled_by}",
                    cancelled_by,
                )
        except Exception as exc:
            raise self._consistency_error(booking_id, payment_intent_id, "cancel") from exc

        return AuthorizationCancellationResult(
            payment_intent_id=payment_intent_id,
            booking_status=booking.status,
            payment_status=booking.payment_status,
            message="Payment authorization released successfully",
        )

    # Customer self-service path

    def get_cancellation_policy(self) -> CancellationPolicy:
        """Policy from system_settings, falling back to configuration for missing or bad values."""
        hours = settings.cancellation_hours_prior
        stored_hours = self.setting_repository.get_value(SETTING_CANCELLATION_HOURS_PRIOR)
        if stored_hours not in (None, ""):
            try:
                parsed = int(str(stored_hours).strip())
                if parsed < 0:
                    raise ValueError("negative")
                hours = parsed
            except ValueError:
                self.logger.warning(
                    f"Invalid {SETTING_CANCELLATION_HOURS_PRIOR} setting {stored_hours!r}; "
                    f"using {hours}"
                )

        phone = self.setting_repository.get_value(SETTING_BUSINESS_PHONE)
        return CancellationPolicy(
            hours_prior=hours,
            business_phone=(phone or "").strip() or settings.business_phone,
        )

    @BaseService.measure_operation("cancel_by_customer")
    def cancel_by_customer(self, booking_id: str) -> CustomerCancellationOutcome:
        """
        Cancel a booking from the customer's emailed link.

        Outcomes: ``cancelled``, ``not_allowed`` (inside the cancellation
        window, booking untouched) or ``already_cancelled``.

        Raises:
            BookingNotFoundException: unknown booking id
            ConflictException: booking already completed
            PaymentProcessorException: the hold could not be released (booking untouched)
            PaymentConsistencyException: hold released but the booking update failed
        """
        booking = self.booking_repository.get_by_booking_id(booking_id)
        if booking is None:
            raise BookingNotFoundException(booking_id)

        policy = self.get_cancellation_policy()
        if booking.status == BookingStatus.CANCELLED.value:
            return CustomerCancellationOutcome(OUTCOME_ALREADY_CANCELLED, booking, policy)
        if booking.status == BookingStatus.COMPLETED.value:
            raise ConflictException(
                "This booking has already been completed and cannot be cancelled",
                code="BOOKING_COMPLETED",
                details={"booking_id": booking_id},
            )

        hours_until = hours_between(self.clock(), booking.booking_time)
        if hours_until < policy.hours_prior:
            self.logger.info(
                f"Self-cancellation refused for {booking_id}: {hours_until:.2f}h before booking, "
                f"policy {policy.hours_prior}h"
            )
            return CustomerCancellationOutcome(
                OUTCOME_NOT_ALLOWED, booking, policy, hours_until_booking=hours_until
            )

        released = False
        if booking.payment_intent_id and booking.payment_status in RELEASABLE_PAYMENT_STATUSES:
            self._release_hold(booking.payment_intent_id)
            released = True

        occurrences: List[BookingOccurrence] = []
        released_occurrences: List[str] = []
        failures: List[str] = []
        if booking.is_recurring:
            occurrences = [
                o
                for o in self.booking_repository.get_occurrences(booking)
                if o.status not in (BookingStatus.CANCELLED.value, BookingStatus.COMPLETED.value)
            ]
            released_occurrences, failures = self._release_occurrence_holds(occurrences)

        now = self.clock()
        try:
            with self.transaction():
                changes = {
                    "status": BookingStatus.CANCELLED.value,
                    "cancelled_at": now,
                    "cancelled_by": ACTOR_CUSTOMER,
                    "cancellation_reason": CUSTOMER_CANCELLATION_REASON,
                }
                if released:
                    changes["payment_status"] = PaymentStatus.CANCELLED.value
                self.booking_repository.update(booking, **changes)
                for occurrence in occurrences:
                    self.booking_repository.update_occurrence(
                        occurrence, status=BookingStatus.CANCELLED.value
                    )
                notes = CUSTOMER_CANCELLATION_REASON
                if occurrences:
                    notes = f"{notes}. {len(occurrences)} recurring occurrence(s) also cancelled"
                self.audit.record(booking, BookingStatus.CANCELLED.value, notes, ACTOR_CUSTOMER)
        except Exception as exc:
            if not released and not released_occurrences:
                raise
            raise self._consistency_error(
                booking_id,
                booking.payment_intent_id if released else None,
                "customer_cancel",
                released_occurrences=released_occurrences,
            ) from exc

        return CustomerCancellationOutcome(
            OUTCOME_CANCELLED,
            booking,
            policy,
            hours_until_booking=hours_until,
            payment_released=released or bool(released_occurrences),
            occurrences_cancelled=len(occurrences),
            occurrence_release_failures=failures,
        )

    # Helpers

    def _release_hold(self, payment_intent_id: str) -> None:
        hold = self.gateway.cancel(payment_intent_id)
        if hold.status != INTENT_CANCELED:
            raise PaymentProcessorException(
                f"Payment cancellation failed. Status: {hold.status}",
                category=PaymentProcessorException.PROCESSOR_ERROR,
                details={"payment_intent_status": hold.status},
            )

    def _release_occurrence_holds(
        self, occurrences: List[BookingOccurrence]
    ) -> Tuple[List[str], List[str]]:
        """
        Release each authorized occurrence hold.

        Returns the released and the failed intent ids. Failures are logged,
        not raised.
        """
        released: List[str] = []
        failures: List[str] = []
        for occurrence in occurrences:
            if not occurrence.payment_intent_id:
                continue
            if occurrence.payment_status != PaymentStatus.AUTHORIZED.value:
                continue
            try:
                self._release_hold(occurrence.payment_intent_id)
            except PaymentProcessorException as e:
                self.logger.error(
                    f"Failed to release hold {occurrence.payment_intent_id} for occurrence "
                    f"{occurrence.occurrence_number}: {e.message}"
                )
                failures.append(occurrence.payment_intent_id)
                continue
            occurrence.payment_status = PaymentStatus.CANCELLED.value
            released.append(occurrence.payment_intent_id)
        return released, failures

    def _consistency_error(
        self,
        booking_id: str,
        payment_intent_id: Optional[str],
        operation: str,
        released_occurrences: Optional[List[str]] = None,
    ) -> PaymentConsistencyException:
        self.logger.critical(
            "CRITICAL: Payment authorization released but booking update failed",
            extra={
                "booking_id": booking_id,
                "payment_intent_id": payment_intent_id,
                "released_payment_intent_ids": released_occurrences or [],
            },
            exc_info=True,
        )
        prometheus_metrics.inc_consistency_error(operation)
        return PaymentConsistencyException(
            "Payment authorization released but booking update failed",
            booking_id=booking_id,
            payment_intent_id=payment_intent_id,
            released_payment_intent_ids=released_occurrences,
        )
