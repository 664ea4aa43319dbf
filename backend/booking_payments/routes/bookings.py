# backend/booking_payments/routes/bookings.py
"""
Booking Routes

- ``GET /bookings/cancel``: the customer self-cancel link from booking
  emails. Always answers with an HTML page, never JSON.
- ``POST /api/bookings/{booking_id}/response``: therapist accept / decline.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import HTMLResponse

from ..core.exceptions import (
    ConflictException,
    DomainException,
    NotFoundException,
    PaymentConsistencyException,
    PaymentProcessorException,
)
from ..schemas.payment_schemas import TherapistResponseRequest, TherapistResponseResponse
from ..services.cancellation_service import (
    OUTCOME_ALREADY_CANCELLED,
    OUTCOME_CANCELLED,
    CancellationService,
)
from ..services.dependencies import (
    get_cancellation_service,
    get_template_service,
    get_therapist_response_service,
)
from ..services.template_service import TemplateService
from ..services.therapist_response_service import ACTION_ACCEPT, TherapistResponseService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings"])

_OUTCOME_TEMPLATES = {
    OUTCOME_CANCELLED: "cancellation/success.html",
    OUTCOME_ALREADY_CANCELLED: "cancellation/already_cancelled.html",
}


def _error_page(
    template_service: TemplateService,
    status_code: int,
    title: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
) -> HTMLResponse:
    html = template_service.render_template(
        "cancellation/error.html", context, title=title, message=message
    )
    return HTMLResponse(content=html, status_code=status_code)


@router.get("/bookings/cancel", response_class=HTMLResponse)
def cancel_booking_page(
    booking_id: Optional[str] = Query(default=None),
    booking: Optional[str] = Query(default=None, description="Alias used by older email links"),
    cancellation_service: CancellationService = Depends(get_cancellation_service),
    template_service: TemplateService = Depends(get_template_service),
) -> HTMLResponse:
    """
    Cancel a booking from the customer's emailed link.

    200 for cancelled / not allowed / already cancelled; error pages use
    400 (no id), 404 (unknown booking), 409 (completed), 502 (hold could not
    be released) and 500 (released but not recorded).
    """
    identifier = (booking_id or booking or "").strip()
    if not identifier:
        return _error_page(
            template_service,
            status.HTTP_400_BAD_REQUEST,
            "Invalid Link",
            "This cancellation link is missing the booking reference.",
        )

    try:
        outcome = cancellation_service.cancel_by_customer(identifier)
    except NotFoundException:
        return _error_page(
            template_service,
            status.HTTP_404_NOT_FOUND,
            "Booking Not Found",
            "We couldn't find a booking matching this link.",
        )
    except ConflictException as e:
        return _error_page(template_service, status.HTTP_409_CONFLICT, "Cannot Cancel", e.message)
    except PaymentProcessorException as e:
        logger.error(f"Self-cancel of {identifier} failed releasing the hold: {e.message}")
        return _error_page(
            template_service,
            status.HTTP_502_BAD_GATEWAY,
            "Unable to Cancel",
            "We couldn't release the payment hold on your card, so your booking has not been "
            "cancelled. Please try again shortly or call us.",
        )
    except PaymentConsistencyException:
        return _error_page(
            template_service,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Cancellation Incomplete",
            "Your payment hold was released but we couldn't update your booking. "
            "Our team has been notified and will confirm the cancellation with you.",
        )
    except DomainException as e:
        logger.error(f"Self-cancel of {identifier} failed: {e.code} {e.message}")
        return _error_page(
            template_service,
            e.status_code,
            "Unable to Cancel",
            "Something went wrong while cancelling your booking. Please call us.",
        )

    context: Dict[str, Any] = {
        "booking": outcome.booking,
        "business_phone": outcome.policy.business_phone,
        "policy_hours": outcome.policy.hours_prior,
        "is_recurring": outcome.is_recurring,
        "occurrences_cancelled": outcome.occurrences_cancelled,
        "payment_released": outcome.payment_released,
        "release_failures": len(outcome.occurrence_release_failures),
    }
    template_name = _OUTCOME_TEMPLATES.get(outcome.outcome, "cancellation/not_allowed.html")
    html = template_service.render_template(template_name, context)
    return HTMLResponse(content=html, status_code=status.HTTP_200_OK)


@router.post("/api/bookings/{booking_id}/response", response_model=TherapistResponseResponse)
def respond_to_booking(
    booking_id: str,
    request: TherapistResponseRequest,
    response_service: TherapistResponseService = Depends(get_therapist_response_service),
) -> TherapistResponseResponse:
    booking = response_service.respond(
        booking_id, request.therapist_id, request.action, reason=request.reason
    )
    verb = "accepted" if request.action == ACTION_ACCEPT else "declined"
    return TherapistResponseResponse(
        success=True,
        booking_id=booking.booking_id,
        booking_status=booking.status,
        message=f"Booking {verb}",
    )
