# backend/booking_payments/schemas/webhook_events.py
"""
Typed processor webhook events.

A verified Stripe event is decoded once, at the HTTP boundary, into one of
the variants below. Event types the reconciler does not act on become an
``UnhandledEvent`` which is deliberately a no-op.
"""

from typing import Any, Dict, Literal, Mapping, Optional, Union

from pydantic import Field

from ..core.exceptions import ValidationException
from ._strict_base import StrictModel


class _PaymentIntentEvent(StrictModel):
    event_id: Optional[str] = None
    event_type: str
    payment_intent_id: str
    booking_id: Optional[str] = Field(default=None, description="From intent metadata")
    amount: Optional[int] = None
    amount_received: Optional[int] = None
    customer_id: Optional[str] = None
    payment_method_id: Optional[str] = None


class AuthorizationRequiresCapture(_PaymentIntentEvent):
    kind: Literal["authorization_requires_capture"] = "authorization_requires_capture"


class PaymentSucceeded(_PaymentIntentEvent):
    kind: Literal["payment_succeeded"] = "payment_succeeded"


class PaymentFailed(_PaymentIntentEvent):
    kind: Literal["payment_failed"] = "payment_failed"
    failure_message: Optional[str] = None


class PaymentCanceled(_PaymentIntentEvent):
    kind: Literal["payment_canceled"] = "payment_canceled"
    cancellation_reason: Optional[str] = None


class UnhandledEvent(StrictModel):
    kind: Literal["unhandled"] = "unhandled"
    event_id: Optional[str] = None
    event_type: str


WebhookEvent = Union[
    AuthorizationRequiresCapture,
    PaymentSucceeded,
    PaymentFailed,
    PaymentCanceled,
    UnhandledEvent,
]

# Stripe reports a placed hold as amount_capturable_updated; requires_capture is
# the name some integrations forward it under.
_EVENT_TYPES = {
    "payment_intent.amount_capturable_updated": AuthorizationRequiresCapture,
    "payment_intent.requires_capture": AuthorizationRequiresCapture,
    "payment_intent.succeeded": PaymentSucceeded,
    "payment_intent.payment_failed": PaymentFailed,
    "payment_intent.canceled": PaymentCanceled,
}


def _expandable_id(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return value.get("id")
    return None


def parse_webhook_event(event: Mapping[str, Any]) -> WebhookEvent:
    """
    Decode a verified Stripe event payload.

    Raises:
        ValidationException: a recognized event without a payment intent object
    """
    event_type = str(event.get("type") or "")
    event_id = event.get("id")
    variant = _EVENT_TYPES.get(event_type)
    if variant is None:
        return UnhandledEvent(event_id=event_id, event_type=event_type)

    intent = (event.get("data") or {}).get("object") or {}
    intent_id = intent.get("id") if isinstance(intent, Mapping) else None
    if not intent_id:
        raise ValidationException(
            "Webhook event has no payment intent",
            code="INVALID_WEBHOOK_PAYLOAD",
            details={"event_type": event_type},
        )

    metadata = intent.get("metadata") or {}
    fields: Dict[str, Any] = {
        "event_id": event_id,
        "event_type": event_type,
        "payment_intent_id": intent_id,
        "booking_id": metadata.get("booking_id") or None,
        "amount": intent.get("amount"),
        "amount_received": intent.get("amount_received"),
        "customer_id": _expandable_id(intent.get("customer")),
        "payment_method_id": _expandable_id(intent.get("payment_method")),
    }
    if variant is PaymentFailed:
        last_error = intent.get("last_payment_error") or {}
        fields["failure_message"] = last_error.get("message")
    elif variant is PaymentCanceled:
        fields["cancellation_reason"] = intent.get("cancellation_reason")
    return variant(**fields)
