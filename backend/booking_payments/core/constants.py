"""Application-wide constants for the booking payments service."""

from __future__ import annotations

from decimal import Decimal

BRAND_NAME = "Rejuvenators Mobile Massage"

API_TITLE = f"{BRAND_NAME} Booking Payments API"
API_VERSION = "1.0.0"
API_DESCRIPTION = (
    "Payment authorization lifecycle for mobile massage bookings: authorization holds, "
    "webhook reconciliation, capture on completion, cancellation and declined-booking recovery."
)

# Customer self-cancellation policy
DEFAULT_CANCELLATION_HOURS_PRIOR = 24
DEFAULT_BUSINESS_PHONE = "1300 302 542"
DEFAULT_BOOKING_TIMEZONE = "Australia/Brisbane"

# system_settings keys that override configuration at runtime
SETTING_CANCELLATION_HOURS_PRIOR = "cancellation_hours_prior"
SETTING_BUSINESS_PHONE = "business_phone"

# Actors recorded in booking_status_history.changed_by
ACTOR_STRIPE_WEBHOOK = "stripe_webhook"
ACTOR_CUSTOMER = "customer"
ACTOR_ADMIN = "admin"
ACTOR_SYSTEM = "system"

# Text constraints
MAX_REASON_LENGTH = 500

# Smallest amount the processor will authorize, in dollars
MIN_CHARGE_AMOUNT = Decimal("0.50")
