# backend/booking_payments/routes/stripe_webhooks.py
"""
Stripe Webhook Endpoints

Receives payment intent events, verifies their signature and hands them
to the WebhookReconciler. Event types the reconciler does not handle are
acknowledged with 200 so Stripe stops redelivering them.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ..core.exceptions import DomainException
from ..integrations.stripe_gateway import StripeGateway
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..schemas.payment_schemas import WebhookResponse
from ..schemas.webhook_events import parse_webhook_event
from ..services.dependencies import get_stripe_gateway, get_webhook_reconciler
from ..services.webhook_reconciler import WebhookReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/stripe", tags=["stripe-webhooks"])


@router.post("/payment-events", response_model=WebhookResponse)
async def handle_payment_events(
    request: Request,
    gateway: StripeGateway = Depends(get_stripe_gateway),
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    """
    Handle Stripe payment intent webhook events.

    Processes:
    - payment_intent.amount_capturable_updated (hold placed)
    - payment_intent.succeeded
    - payment_intent.payment_failed
    - payment_intent.canceled

    Returns:
        200 with status ``success`` or ``ignored``; 400 for a bad signature
        or payload; 500 when processing fails so Stripe retries.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    # Signature and payload errors are DomainExceptions rendered by errors.py
    event = gateway.construct_event(payload, signature)
    webhook_event = parse_webhook_event(event)

    try:
        result = await run_in_threadpool(reconciler.handle, webhook_event)
    except DomainException:
        prometheus_metrics.record_webhook_event(webhook_event.event_type, "error")
        raise
    except Exception as e:
        prometheus_metrics.record_webhook_event(webhook_event.event_type, "error")
        logger.error(
            f"Failed to process webhook {webhook_event.event_type}: {str(e)}", exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Failed to process webhook",
                "event_type": webhook_event.event_type,
            },
        )

    return WebhookResponse(
        status="success" if result.handled else "ignored",
        event_type=result.event_type,
        message=result.detail,
    )
