from __future__ import annotations

from unittest.mock import patch

from booking_payments.core.exceptions import WebhookSignatureException
from booking_payments.models.booking import BookingStatus, PaymentStatus
from booking_payments.monitoring.prometheus_metrics import REGISTRY
from booking_payments.services.webhook_reconciler import WebhookReconciler

URL = "/webhooks/stripe/payment-events"
HEADERS = {"stripe-signature": "t=1,v1=abc"}


def test_authorization_event_is_applied(client, db, gateway, booking_factory, stripe_event):
    booking = booking_factory(payment_intent_id="pi_hook")
    gateway.construct_event.return_value = stripe_event(
        "payment_intent.amount_capturable_updated", "pi_hook", booking.booking_id
    )

    response = client.post(URL, content=b"{}", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    args = gateway.construct_event.call_args.args
    assert args == (b"{}", "t=1,v1=abc")
    db.refresh(booking)
    assert booking.payment_status == PaymentStatus.AUTHORIZED.value


def test_bad_signature_is_rejected(client, gateway):
    gateway.construct_event.side_effect = WebhookSignatureException()

    response = client.post(URL, content=b"{}", headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["error"] == "Webhook Error"


def test_unhandled_event_is_acknowledged(client, gateway, stripe_event):
    gateway.construct_event.return_value = stripe_event("payment_intent.created", "pi_x", "RMM-1")

    response = client.post(URL, content=b"{}", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert response.json()["event_type"] == "payment_intent.created"


def test_event_for_unknown_booking_is_ignored(client, gateway, stripe_event):
    gateway.construct_event.return_value = stripe_event(
        "payment_intent.succeeded", "pi_x", "RMM-GHOST"
    )

    response = client.post(URL, content=b"{}", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {
        "status": "ignored",
        "event_type": "payment_intent.succeeded",
        "message": "booking not found",
    }


def test_processing_failure_asks_for_redelivery(client, gateway, booking_factory, stripe_event):
    booking = booking_factory(
        payment_intent_id="pi_hook",
        status=BookingStatus.CONFIRMED.value,
        payment_status=PaymentStatus.AUTHORIZED.value,
    )
    gateway.construct_event.return_value = stripe_event(
        "payment_intent.succeeded", "pi_hook", booking.booking_id
    )

    labels = {"event_type": "payment_intent.succeeded", "outcome": "error"}
    errors_before = REGISTRY.get_sample_value("booking_payments_webhook_events_total", labels) or 0

    with patch.object(WebhookReconciler, "handle", side_effect=RuntimeError("db gone")):
        response = client.post(URL, content=b"{}", headers=HEADERS)

    assert response.status_code == 500
    assert response.json() == {
        "error": "Failed to process webhook",
        "event_type": "payment_intent.succeeded",
    }
    errors_after = REGISTRY.get_sample_value("booking_payments_webhook_events_total", labels)
    assert errors_after == errors_before + 1
