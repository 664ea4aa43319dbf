from __future__ import annotations

import pytest

from booking_payments.core.exceptions import ValidationException
from booking_payments.schemas.webhook_events import (
    AuthorizationRequiresCapture,
    PaymentCanceled,
    PaymentFailed,
    PaymentSucceeded,
    UnhandledEvent,
    parse_webhook_event,
)


@pytest.mark.parametrize(
    "event_type,variant",
    [
        ("payment_intent.amount_capturable_updated", AuthorizationRequiresCapture),
        ("payment_intent.requires_capture", AuthorizationRequiresCapture),
        ("payment_intent.succeeded", PaymentSucceeded),
        ("payment_intent.payment_failed", PaymentFailed),
        ("payment_intent.canceled", PaymentCanceled),
    ],
)
def test_event_types_map_to_variants(stripe_event, event_type, variant):
    event = parse_webhook_event(stripe_event(event_type, "pi_1", "RMM-1"))

    assert isinstance(event, variant)
    assert event.payment_intent_id == "pi_1"
    assert event.booking_id == "RMM-1"
    assert event.event_type == event_type


def test_unknown_type_is_unhandled(stripe_event):
    event = parse_webhook_event(stripe_event("charge.refunded", "ch_1"))

    assert isinstance(event, UnhandledEvent)
    assert event.event_type == "charge.refunded"


def test_expanded_customer_and_payment_method(stripe_event):
    event = parse_webhook_event(
        stripe_event(
            "payment_intent.amount_capturable_updated",
            "pi_1",
            "RMM-1",
            customer={"id": "cus_9", "object": "customer"},
            payment_method="pm_9",
        )
    )

    assert event.customer_id == "cus_9"
    assert event.payment_method_id == "pm_9"


def test_failure_and_cancellation_details(stripe_event):
    failed = parse_webhook_event(
        stripe_event(
            "payment_intent.payment_failed",
            "pi_1",
            "RMM-1",
            last_payment_error={"message": "Insufficient funds"},
        )
    )
    canceled = parse_webhook_event(
        stripe_event("payment_intent.canceled", "pi_1", "RMM-1", cancellation_reason="abandoned")
    )

    assert failed.failure_message == "Insufficient funds"
    assert canceled.cancellation_reason == "abandoned"


def test_missing_booking_metadata_is_none(stripe_event):
    event = parse_webhook_event(stripe_event("payment_intent.succeeded", "pi_1"))

    assert event.booking_id is None


def test_recognized_event_without_intent_is_rejected():
    with pytest.raises(ValidationException):
        parse_webhook_event({"id": "evt_1", "type": "payment_intent.succeeded", "data": {}})
