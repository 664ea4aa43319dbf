# backend/booking_payments/schemas/payment_schemas.py
"""
Request and response contracts for the payment endpoints.

Every request is validated here before any service logic runs; amounts
are in major currency units (dollars) unless a field says otherwise.
"""

from decimal import Decimal
from typing import Annotated, Literal, Optional

from pydantic import Field, StringConstraints

from ..core.constants import ACTOR_ADMIN, MAX_REASON_LENGTH, MIN_CHARGE_AMOUNT
from ._strict_base import StrictModel, StrictRequestModel

RequiredId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]

# Whole cents, at least the processor minimum charge
ChargeAmount = Annotated[Decimal, Field(ge=MIN_CHARGE_AMOUNT, decimal_places=2)]


# Create authorization


class BookingAuthorizationData(StrictRequestModel):
    """Booking context attached to the hold as processor metadata."""

    booking_id: RequiredId
    customer_email: Optional[str] = Field(default=None, max_length=255)
    customer_name: Optional[str] = Field(default=None, max_length=255)
    service_name: Optional[str] = Field(default=None, max_length=255)
    booking_time: Optional[str] = Field(default=None, max_length=64)
    therapist_fee: Optional[Decimal] = Field(default=None, ge=0)


class CreateAuthorizationRequest(StrictRequestModel):
    amount: ChargeAmount = Field(..., description="Amount to hold, in dollars")
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    booking_data: BookingAuthorizationData = Field(..., alias="bookingData")


class AuthorizationResponse(StrictModel):
    client_secret: Optional[str]
    payment_intent_id: str
    stripe_customer_id: Optional[str] = None
    amount: int = Field(..., description="Held amount in cents")
    currency: str


# Capture


class CapturePaymentRequest(StrictRequestModel):
    payment_intent_id: RequiredId
    booking_id: RequiredId
    completed_by: str = Field(default=ACTOR_ADMIN, min_length=1, max_length=255)


class CapturePaymentResponse(StrictModel):
    success: bool
    payment_intent: str
    amount_captured: Optional[int] = Field(default=None, description="Captured amount in cents")
    booking_status: str
    payment_status: str


# Cancel authorization


class CancelAuthorizationRequest(StrictRequestModel):
    payment_intent_id: RequiredId
    booking_id: RequiredId
    cancelled_by: str = Field(default=ACTOR_ADMIN, min_length=1, max_length=255)
    reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


class CancelAuthorizationResponse(StrictModel):
    success: bool
    payment_intent: str
    booking_status: str
    payment_status: str
    message: str


# Recovery


class RecoverBookingRequest(StrictRequestModel):
    booking_id: RequiredId
    stripe_customer_id: RequiredId
    amount: ChargeAmount = Field(..., description="Amount to re-authorize, in dollars")
    new_therapist_id: RequiredId
    recovered_by: str = Field(default=ACTOR_ADMIN, min_length=1, max_length=255)


class RecoveredTherapist(StrictModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class RecoveredPayment(StrictModel):
    payment_intent_id: str
    amount: float = Field(..., description="Authorized amount in dollars")
    status: str
    card_last4: Optional[str] = None
    card_brand: Optional[str] = None


class PreviousAuthorizationRelease(StrictModel):
    """What happened to the hold the recovery replaced."""

    payment_intent_id: Optional[str] = None
    attempted: bool
    succeeded: bool
    detail: Optional[str] = None


class RecoverBookingResponse(StrictModel):
    success: bool
    booking_id: str
    new_therapist: RecoveredTherapist
    payment: RecoveredPayment
    booking_status: str
    previous_authorization: PreviousAuthorizationRelease


# Recurring occurrences


class OccurrenceAuthorizationRequest(StrictRequestModel):
    booking_id: RequiredId
    occurrence_number: int = Field(..., ge=1)
    amount: ChargeAmount
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class OccurrenceAuthorizationResponse(StrictModel):
    success: bool
    booking_id: str
    occurrence_number: int
    payment_intent_id: str
    payment_status: str


# Therapist response


class TherapistResponseRequest(StrictRequestModel):
    therapist_id: RequiredId
    action: Literal["accept", "decline"]
    reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


class TherapistResponseResponse(StrictModel):
    success: bool
    booking_id: str
    booking_status: str
    message: str


# Webhooks


class WebhookResponse(StrictModel):
    status: Literal["success", "ignored"]
    event_type: str
    message: Optional[str] = None


# Monitoring


class HealthResponse(StrictModel):
    status: Literal["ok"]
