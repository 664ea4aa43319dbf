# backend/booking_payments/routes/payments.py
"""
Payment API Routes

Handles the authorization-hold lifecycle for bookings:
- Authorization holds placed at booking time
- Capture when a job is completed
- Release of holds on cancellation
- Recovery of declined bookings onto the saved card
- Off-session authorization of recurring occurrences

Domain exceptions raised by the services are rendered by the handlers in
``errors.py``; routes only translate between schemas and services.
"""

import logging

from fastapi import APIRouter, Depends, status

from ..schemas.payment_schemas import (
    AuthorizationResponse,
    CancelAuthorizationRequest,
    CancelAuthorizationResponse,
    CapturePaymentRequest,
    CapturePaymentResponse,
    CreateAuthorizationRequest,
    OccurrenceAuthorizationRequest,
    OccurrenceAuthorizationResponse,
    PreviousAuthorizationRelease,
    RecoverBookingRequest,
    RecoverBookingResponse,
    RecoveredPayment,
    RecoveredTherapist,
)
from ..services.authorization_service import AuthorizationService
from ..services.cancellation_service import CancellationService
from ..services.completion_service import CompletionService
from ..services.dependencies import (
    get_authorization_service,
    get_cancellation_service,
    get_completion_service,
    get_recovery_service,
)
from ..services.recovery_service import RecoveryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post(
    "/authorizations",
    response_model=AuthorizationResponse,
    status_code=status.HTTP_200_OK,
)
def create_authorization(
    request: CreateAuthorizationRequest,
    authorization_service: AuthorizationService = Depends(get_authorization_service),
) -> AuthorizationResponse:
    """
    Place an authorize-only hold for a new booking.

    The returned client secret is confirmed by the customer's browser; the
    hold only becomes ``authorized`` once the processor's webhook arrives.
    """
    result = authorization_service.create_authorization(
        request.amount, request.booking_data, currency=request.currency
    )
    return AuthorizationResponse(
        client_secret=result.client_secret,
        payment_intent_id=result.payment_intent_id,
        stripe_customer_id=result.stripe_customer_id,
        amount=result.amount,
        currency=result.currency,
    )


@router.post("/capture", response_model=CapturePaymentResponse)
def capture_payment(
    request: CapturePaymentRequest,
    completion_service: CompletionService = Depends(get_completion_service),
) -> CapturePaymentResponse:
    """Capture the held funds for a completed job."""
    result = completion_service.capture_completed_booking(
        request.booking_id, request.payment_intent_id, request.completed_by
    )
    return CapturePaymentResponse(
        success=True,
        payment_intent=result.payment_intent_id,
        amount_captured=result.amount_captured,
        booking_status=result.booking_status,
        payment_status=result.payment_status,
    )


@router.post("/cancel-authorization", response_model=CancelAuthorizationResponse)
def cancel_authorization(
    request: CancelAuthorizationRequest,
    cancellation_service: CancellationService = Depends(get_cancellation_service),
) -> CancelAuthorizationResponse:
    result = cancellation_service.cancel_authorization(
        request.booking_id,
        request.payment_intent_id,
        request.cancelled_by,
        reason=request.reason,
    )
    return CancelAuthorizationResponse(
        success=True,
        payment_intent=result.payment_intent_id,
        booking_status=result.booking_status,
        payment_status=result.payment_status,
        message=result.message,
    )


@router.post("/recover", response_model=RecoverBookingResponse)
def recover_declined_booking(
    request: RecoverBookingRequest,
    recovery_service: RecoveryService = Depends(get_recovery_service),
) -> RecoverBookingResponse:
    """
    Re-authorize a declined booking on the customer's saved card and
    reassign it to a new therapist.

    The response reports what happened to the hold that was replaced.
    """
    result = recovery_service.recover_declined_booking(
        request.booking_id,
        request.stripe_customer_id,
        request.amount,
        request.new_therapist_id,
        request.recovered_by,
    )
    therapist = result.therapist
    return RecoverBookingResponse(
        success=True,
        booking_id=result.booking.booking_id,
        new_therapist=RecoveredTherapist(
            id=therapist.id,
            name=therapist.full_name,
            email=therapist.email,
            phone=therapist.phone,
        ),
        payment=RecoveredPayment(
            payment_intent_id=result.hold.payment_intent_id,
            amount=float(result.amount),
            status=result.hold.status,
            card_last4=result.card.last4,
            card_brand=result.card.brand,
        ),
        booking_status=result.booking.status,
        previous_authorization=PreviousAuthorizationRelease(
            payment_intent_id=result.previous_payment_intent_id,
            attempted=result.previous_release.attempted,
            succeeded=result.previous_release.succeeded,
            detail=result.previous_release.detail,
        ),
    )


@router.post("/occurrences/authorize", response_model=OccurrenceAuthorizationResponse)
def authorize_occurrence(
    request: OccurrenceAuthorizationRequest,
    authorization_service: AuthorizationService = Depends(get_authorization_service),
) -> OccurrenceAuthorizationResponse:
    occurrence = authorization_service.authorize_occurrence(
        request.booking_id,
        request.occurrence_number,
        request.amount,
        currency=request.currency,
    )
    return OccurrenceAuthorizationResponse(
        success=True,
        booking_id=request.booking_id,
        occurrence_number=occurrence.occurrence_number,
        payment_intent_id=occurrence.payment_intent_id,
        payment_status=occurrence.payment_status,
    )
