# backend/booking_payments/services/webhook_reconciler.py
"""
Webhook-driven reconciliation of booking and payment state.

The processor's asynchronous events are the authority for promoting a
booking's payment state. Every handler checks the booking's current state
before transitioning, so a redelivered event is a no-op the second time.

State machine:
    authorization_requires_capture -> payment authorized (booking status unchanged)
    payment_succeeded              -> payment captured, booking completed
    payment_failed                 -> payment failed (booking status unchanged)
    payment_canceled               -> payment cancelled, booking cancelled
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Type

from sqlalchemy.orm import Session

from ..core.constants import ACTOR_STRIPE_WEBHOOK
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from ..schemas.webhook_events import (
    AuthorizationRequiresCapture,
    PaymentCanceled,
    PaymentFailed,
    PaymentSucceeded,
    UnhandledEvent,
    WebhookEvent,
)
from ..utils.time_utils import utc_now
from .base import BaseService
from .booking_audit_service import BookingAuditService

# History statuses written by the reconciler
HISTORY_PAYMENT_AUTHORIZED = "payment_authorized"
HISTORY_COMPLETED = BookingStatus.COMPLETED.value
HISTORY_PAYMENT_FAILED = "payment_failed"
HISTORY_CANCELLED = BookingStatus.CANCELLED.value

NOTE_AUTHORIZED = "Payment method authorized - funds held pending therapist acceptance"
NOTE_AUTHORIZED_BY_CAPTURE = "Payment authorization confirmed by capture event"
NOTE_COMPLETED = "Payment completed - service completed and paid"
NOTE_FAILED = "Payment failed - booking requires manual review"
NOTE_CANCELED = "Payment canceled - booking canceled"


@dataclass(frozen=True)
class ReconciliationResult:
    handled: bool
    event_type: str
    booking_id: Optional[str] = None
    detail: Optional[str] = None

    @property
    def outcome(self) -> str:
        return "processed" if self.handled else "ignored"


class WebhookReconciler(BaseService):
    def __init__(
        self,
        db: Session,
        booking_repository: Optional[BookingRepository] = None,
        audit_service: Optional[BookingAuditService] = None,
    ):
        super().__init__(db)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.audit = audit_service or BookingAuditService(db)
        self._handlers: Dict[Type, Callable[[Booking, WebhookEvent], ReconciliationResult]] = {
            AuthorizationRequiresCapture: self._apply_authorized,
            PaymentSucceeded: self._apply_succeeded,
            PaymentFailed: self._apply_failed,
            PaymentCanceled: self._apply_canceled,
        }

    @BaseService.measure_operation("reconcile_webhook_event")
    def handle(self, event: WebhookEvent) -> ReconciliationResult:
        """Apply ``event`` to its booking, or explain why it was ignored."""
        if isinstance(event, UnhandledEvent):
            self.logger.info(f"Unhandled webhook event type: {event.event_type}")
            result = ReconciliationResult(False, event.event_type, detail="unhandled event type")
        else:
            result = self._reconcile(event)
        prometheus_metrics.record_webhook_event(result.event_type, result.outcome)
        return result

    def _reconcile(self, event: WebhookEvent) -> ReconciliationResult:
        if not event.booking_id:
            self.logger.warning(
                f"{event.event_type} for {event.payment_intent_id} has no booking_id metadata"
            )
            return ReconciliationResult(False, event.event_type, detail="no booking_id in metadata")

        booking = self.booking_repository.get_by_booking_id(event.booking_id)
        if booking is None:
            self.logger.warning(
                f"{event.event_type}: booking {event.booking_id} not found "
                f"(payment intent {event.payment_intent_id})"
            )
            return ReconciliationResult(
                False, event.event_type, event.booking_id, detail="booking not found"
            )

        if booking.payment_intent_id and booking.payment_intent_id != event.payment_intent_id:
            self.logger.info(
                f"{event.event_type} for superseded payment intent {event.payment_intent_id} "
                f"on booking {booking.booking_id} (current {booking.payment_intent_id})"
            )
            return ReconciliationResult(
                False, event.event_type, booking.booking_id, detail="superseded payment intent"
            )

        return self._handlers[type(event)](booking, event)

    def _ignored(self, booking: Booking, event: WebhookEvent, detail: str) -> ReconciliationResult:
        self.logger.info(f"Ignoring {event.event_type} for booking {booking.booking_id}: {detail}")
        return ReconciliationResult(False, event.event_type, booking.booking_id, detail=detail)

    def _applied(self, booking: Booking, event: WebhookEvent) -> ReconciliationResult:
        self.logger.info(
            f"Applied {event.event_type} to booking {booking.booking_id}: "
            f"status={booking.status} payment_status={booking.payment_status}"
        )
        return ReconciliationResult(True, event.event_type, booking.booking_id, detail="applied")

    def _apply_authorized(self, booking: Booking, event: WebhookEvent) -> ReconciliationResult:
        if booking.payment_status == PaymentStatus.AUTHORIZED.value:
            return self._ignored(booking, event, "already authorized")
        if self.audit.is_terminal_payment(booking.payment_status):
            return self._ignored(booking, event, f"payment already {booking.payment_status}")
        if booking.status == BookingStatus.CANCELLED.value:
            self.logger.warning(
                f"Hold {event.payment_intent_id} placed on cancelled booking {booking.booking_id}"
            )
            return self._ignored(booking, event, "booking cancelled")

        with self.transaction():
            self.booking_repository.update(booking, **self._authorization_fields(booking, event))
            self.audit.record(booking, HISTORY_PAYMENT_AUTHORIZED, NOTE_AUTHORIZED, ACTOR_STRIPE_WEBHOOK)
        return self._applied(booking, event)

    def _apply_succeeded(self, booking: Booking, event: WebhookEvent) -> ReconciliationResult:
        if booking.payment_status == PaymentStatus.CAPTURED.value:
            return self._ignored(booking, event, "already captured")
        if booking.status in (BookingStatus.CANCELLED.value, BookingStatus.DECLINED.value) or (
            booking.payment_status == PaymentStatus.CANCELLED.value
        ):
            self.logger.critical(
                f"CRITICAL: Capture reported for {booking.status} booking {booking.booking_id}",
                extra={
                    "booking_id": booking.booking_id,
                    "payment_intent_id": event.payment_intent_id,
                },
            )
            prometheus_metrics.inc_consistency_error("webhook_capture")
            return self._ignored(booking, event, f"booking {booking.status}")

        with self.transaction():
            if not self.audit.has_entry(booking, HISTORY_PAYMENT_AUTHORIZED):
                self.audit.record(
                    booking, HISTORY_PAYMENT_AUTHORIZED, NOTE_AUTHORIZED_BY_CAPTURE, ACTOR_STRIPE_WEBHOOK
                )
            changes = self._authorization_fields(booking, event)
            changes.update(
                status=BookingStatus.COMPLETED.value,
                payment_status=PaymentStatus.CAPTURED.value,
                completed_at=booking.completed_at or utc_now(),
            )
            self.booking_repository.update(booking, **changes)
            self.audit.record(booking, HISTORY_COMPLETED, NOTE_COMPLETED, ACTOR_STRIPE_WEBHOOK)
        return self._applied(booking, event)

    def _apply_failed(self, booking: Booking, event: WebhookEvent) -> ReconciliationResult:
        if self.audit.is_terminal_payment(booking.payment_status):
            return self._ignored(booking, event, f"payment already {booking.payment_status}")
        if booking.payment_status == PaymentStatus.FAILED.value and self.audit.has_entry(
            booking, HISTORY_PAYMENT_FAILED
        ):
            return self._ignored(booking, event, "already failed")

        notes = NOTE_FAILED
        if isinstance(event, PaymentFailed) and event.failure_message:
            notes = f"{NOTE_FAILED}. Reason: {event.failure_message}"

        with self.transaction():
            self.booking_repository.update(
                booking,
                payment_intent_id=event.payment_intent_id,
                payment_status=PaymentStatus.FAILED.value,
            )
            self.audit.record(booking, HISTORY_PAYMENT_FAILED, notes, ACTOR_STRIPE_WEBHOOK)
        return self._applied(booking, event)

    def _apply_canceled(self, booking: Booking, event: WebhookEvent) -> ReconciliationResult:
        if (
            booking.payment_status == PaymentStatus.CANCELLED.value
            and booking.status == BookingStatus.CANCELLED.value
        ):
            return self._ignored(booking, event, "already cancelled")
        if booking.payment_status == PaymentStatus.CAPTURED.value:
            return self._ignored(booking, event, "payment already captured")

        reason = "Payment authorization canceled"
        if isinstance(event, PaymentCanceled) and event.cancellation_reason:
            reason = f"{reason} ({event.cancellation_reason})"

        with self.transaction():
            self.booking_repository.update(
                booking,
                status=BookingStatus.CANCELLED.value,
                payment_status=PaymentStatus.CANCELLED.value,
                cancelled_at=booking.cancelled_at or utc_now(),
                cancelled_by=booking.cancelled_by or ACTOR_STRIPE_WEBHOOK,
                cancellation_reason=booking.cancellation_reason or reason,
            )
            self.audit.record(booking, HISTORY_CANCELLED, NOTE_CANCELED, ACTOR_STRIPE_WEBHOOK)
        return self._applied(booking, event)

    @staticmethod
    def _authorization_fields(booking: Booking, event: WebhookEvent) -> Dict[str, object]:
        fields: Dict[str, object] = {
            "payment_intent_id": event.payment_intent_id,
            "payment_status": PaymentStatus.AUTHORIZED.value,
        }
        if event.payment_method_id:
            fields["stripe_payment_method_id"] = event.payment_method_id
        if event.customer_id and not booking.stripe_customer_id:
            fields["stripe_customer_id"] = event.customer_id
        return fields
