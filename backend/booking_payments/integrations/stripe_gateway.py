# backend/booking_payments/integrations/stripe_gateway.py
"""
Stripe adapter for authorize / capture / cancel / saved-card operations.

The gateway is the only module that talks to the Stripe SDK. It converts
major-unit amounts to cents, returns plain dataclasses instead of SDK
objects, and classifies SDK errors into PaymentProcessorException
categories so callers can tell a card problem from a system problem.
"""

from dataclasses import dataclass
from decimal import Decimal
import json
import logging
from typing import Any, Dict, List, Mapping, Optional

import stripe

from ..core.config import settings
from ..core.exceptions import (
    PaymentProcessorException,
    ServiceException,
    ValidationException,
    WebhookSignatureException,
)
from ..utils.money import to_cents

logger = logging.getLogger(__name__)

INTENT_REQUIRES_CAPTURE = "requires_capture"
INTENT_SUCCEEDED = "succeeded"
INTENT_CANCELED = "canceled"


@dataclass(frozen=True)
class AuthorizationHold:
    """Snapshot of a PaymentIntent as the services need it."""

    payment_intent_id: str
    status: str
    amount: int
    currency: str
    client_secret: Optional[str] = None
    customer_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    amount_received: Optional[int] = None
    last_payment_error: Optional[str] = None

    @property
    def requires_capture(self) -> bool:
        return self.status == INTENT_REQUIRES_CAPTURE


@dataclass(frozen=True)
class SavedCard:
    id: str
    brand: Optional[str]
    last4: Optional[str]
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None
    created: int = 0


def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _object_id(value: Any) -> Optional[str]:
    """Id of an expandable field, which may be a bare id or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return _field(value, "id")


def _stringify_metadata(metadata: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    return {key: str(value) for key, value in (metadata or {}).items() if value is not None}


def _hold_from_intent(intent: Any) -> AuthorizationHold:
    last_error = _field(intent, "last_payment_error")
    amount_received = _field(intent, "amount_received")
    return AuthorizationHold(
        payment_intent_id=_field(intent, "id"),
        status=_field(intent, "status"),
        amount=int(_field(intent, "amount") or 0),
        currency=_field(intent, "currency") or settings.stripe_currency,
        client_secret=_field(intent, "client_secret"),
        customer_id=_object_id(_field(intent, "customer")),
        payment_method_id=_object_id(_field(intent, "payment_method")),
        amount_received=int(amount_received) if amount_received is not None else None,
        last_payment_error=_field(last_error, "message") if last_error else None,
    )


def classify_stripe_error(exc: "stripe.StripeError", action: str) -> PaymentProcessorException:
    """Map an SDK error to a PaymentProcessorException without leaking its payload."""
    code = getattr(exc, "code", None)
    if isinstance(exc, stripe.CardError):
        decline_code = getattr(exc, "decline_code", None) or _field(
            getattr(exc, "error", None), "decline_code"
        )
        message = getattr(exc, "user_message", None) or str(exc) or "Your card was declined"
        return PaymentProcessorException(
            message,
            category=PaymentProcessorException.CARD_ERROR,
            processor_code=code,
            decline_code=decline_code,
        )
    if isinstance(exc, stripe.InvalidRequestError):
        return PaymentProcessorException(
            getattr(exc, "user_message", None) or f"Invalid request while trying to {action}",
            category=PaymentProcessorException.INVALID_REQUEST,
            processor_code=code,
        )
    return PaymentProcessorException(
        f"Payment processor error while trying to {action}",
        category=PaymentProcessorException.PROCESSOR_ERROR,
        processor_code=code,
    )


class StripeGateway:
    """
    Thin wrapper around the Stripe SDK.

    Constructed once per process (see services.dependencies) and injected
    into services, so tests substitute a MagicMock(spec=StripeGateway).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        currency: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.stripe_secret_key.get_secret_value()
        self.webhook_secret = (
            webhook_secret
            if webhook_secret is not None
            else settings.stripe_webhook_secret.get_secret_value()
        )
        self.currency = (currency or settings.stripe_currency).lower()
        self.timeout_seconds = timeout_seconds or settings.stripe_timeout_seconds
        self.configured = False

        if self.api_key:
            stripe.api_key = self.api_key
            # No automatic retries: a failed call surfaces to the caller
            stripe.max_network_retries = 0
            try:
                stripe.default_http_client = stripe.new_default_http_client(
                    timeout=self.timeout_seconds
                )
            except (AttributeError, TypeError) as e:
                logger.warning(f"Could not apply Stripe HTTP timeout: {e}")
            self.configured = True
        else:
            logger.warning("Stripe secret key not configured - processor calls will fail")

    # Customers

    def find_or_create_customer(
        self, email: Optional[str], name: Optional[str] = None
    ) -> Optional[str]:
        """Return the processor customer id for ``email``, creating the customer if needed."""
        if not email:
            return None
        try:
            existing = stripe.Customer.list(email=email, limit=1)
            data = _field(existing, "data") or []
            if data:
                return _field(data[0], "id")

            customer = stripe.Customer.create(
                email=email,
                name=name or None,
                metadata={"source": "booking_payments"},
            )
            logger.info(f"Created Stripe customer {_field(customer, 'id')}")
            return _field(customer, "id")
        except stripe.StripeError as e:
            logger.error(f"Stripe error finding or creating customer: {str(e)}")
            raise classify_stripe_error(e, "create the customer") from e

    # Payment intents

    def create_authorization(
        self,
        amount: Decimal,
        *,
        currency: Optional[str] = None,
        customer_id: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        description: Optional[str] = None,
    ) -> AuthorizationHold:
        """
        Create an authorize-only PaymentIntent confirmed later by the front end.

        With a customer attached the card is kept for off-session reuse
        (recovery and later occurrences of a recurring series).
        """
        params: Dict[str, Any] = {
            "amount": to_cents(amount),
            "currency": (currency or self.currency).lower(),
            "capture_method": "manual",
            "automatic_payment_methods": {"enabled": True},
            "metadata": _stringify_metadata(metadata),
        }
        if description:
            params["description"] = description
        if customer_id:
            params["customer"] = customer_id
            params["setup_future_usage"] = "off_session"

        try:
            intent = stripe.PaymentIntent.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating authorization: {str(e)}")
            raise classify_stripe_error(e, "authorize the payment") from e
        return _hold_from_intent(intent)

    def create_off_session_authorization(
        self,
        amount: Decimal,
        *,
        customer_id: str,
        payment_method_id: str,
        currency: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        description: Optional[str] = None,
    ) -> AuthorizationHold:
        """Authorize a saved card with the cardholder absent; the outcome is known immediately."""
        params: Dict[str, Any] = {
            "amount": to_cents(amount),
            "currency": (currency or self.currency).lower(),
            "customer": customer_id,
            "payment_method": payment_method_id,
            "capture_method": "manual",
            "confirm": True,
            "off_session": True,
            "metadata": _stringify_metadata(metadata),
        }
        if description:
            params["description"] = description

        try:
            intent = stripe.PaymentIntent.create(**params)
        except stripe.StripeError as e:
            logger.warning(f"Off-session authorization failed for customer {customer_id}: {str(e)}")
            raise classify_stripe_error(e, "authorize the saved card") from e
        return _hold_from_intent(intent)

    def capture(self, payment_intent_id: str) -> AuthorizationHold:
        try:
            intent = stripe.PaymentIntent.capture(payment_intent_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe error capturing payment intent {payment_intent_id}: {str(e)}")
            raise classify_stripe_error(e, "capture the payment") from e
        return _hold_from_intent(intent)

    def cancel(self, payment_intent_id: str) -> AuthorizationHold:
        try:
            intent = stripe.PaymentIntent.cancel(payment_intent_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe error cancelling payment intent {payment_intent_id}: {str(e)}")
            raise classify_stripe_error(e, "release the authorization") from e
        return _hold_from_intent(intent)

    def retrieve(self, payment_intent_id: str) -> AuthorizationHold:
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving payment intent {payment_intent_id}: {str(e)}")
            raise classify_stripe_error(e, "retrieve the payment") from e
        return _hold_from_intent(intent)

    # Saved payment methods

    def list_saved_cards(self, customer_id: str) -> List[SavedCard]:
        """Saved cards for ``customer_id``, most recently saved first."""
        try:
            result = stripe.PaymentMethod.list(customer=customer_id, type="card")
        except stripe.StripeError as e:
            logger.error(f"Stripe error listing payment methods for {customer_id}: {str(e)}")
            raise classify_stripe_error(e, "load saved cards") from e

        cards = []
        for method in _field(result, "data") or []:
            card = _field(method, "card")
            cards.append(
                SavedCard(
                    id=_field(method, "id"),
                    brand=_field(card, "brand"),
                    last4=_field(card, "last4"),
                    exp_month=_field(card, "exp_month"),
                    exp_year=_field(card, "exp_year"),
                    created=int(_field(method, "created") or 0),
                )
            )
        return sorted(cards, key=lambda c: c.created, reverse=True)

    # Webhooks

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify the webhook signature and return the decoded event.

        Raises:
            WebhookSignatureException: missing or invalid signature
            ValidationException: payload is not valid JSON
            ServiceException: webhook secret not configured
        """
        if not signature:
            raise WebhookSignatureException("Missing stripe-signature header")
        if not self.webhook_secret:
            raise ServiceException("Webhook secret not configured")

        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid Stripe webhook signature")
            raise WebhookSignatureException() from e
        except ValueError as e:
            raise ValidationException("Invalid webhook payload", code="INVALID_WEBHOOK_PAYLOAD") from e

        try:
            event = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValidationException("Invalid webhook payload", code="INVALID_WEBHOOK_PAYLOAD") from e
        if not isinstance(event, dict):
            raise ValidationException("Invalid webhook payload", code="INVALID_WEBHOOK_PAYLOAD")
        return event
