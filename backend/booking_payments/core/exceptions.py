# backend/booking_payments/core/exceptions.py
"""
Domain-specific exceptions for the booking payments service.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from fastapi import status

if TYPE_CHECKING:
    from ..services.outcomes import CompensatedOutcome

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal server error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_response_body(self) -> Dict[str, Any]:
        """Structured error body returned to API clients."""
        return {
            "error": self.error,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationException(DomainException):
    """Raised when request or business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Invalid request"


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "Not found"


class ConflictException(DomainException):
    """Raised when there's a conflict with the current state."""

    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE
    error = "Business rule violation"


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Service error"


# Specific business exceptions


class BookingNotFoundException(NotFoundException):
    """Raised when no booking matches the supplied identifiers."""

    def __init__(self, booking_id: str, *, message: Optional[str] = None):
        super().__init__(
            message=message or f"Booking {booking_id} not found",
            code="BOOKING_NOT_FOUND",
            details={"booking_id": booking_id},
        )


class PaymentIntentMismatchException(NotFoundException):
    """Raised when the supplied payment intent is not the booking's current hold."""

    def __init__(self, booking_id: str, payment_intent_id: str):
        super().__init__(
            message="Booking not found or payment intent mismatch",
            code="PAYMENT_INTENT_MISMATCH",
            details={"booking_id": booking_id, "payment_intent_id": payment_intent_id},
        )


class InvalidBookingStatusException(BusinessRuleException):
    """Raised when a booking is not in the status an operation requires."""

    def __init__(self, message: str, *, booking_id: str, current_status: Optional[str]):
        super().__init__(
            message=message,
            code="INVALID_BOOKING_STATUS",
            details={"booking_id": booking_id, "status": current_status},
        )


class PaymentProcessorException(DomainException):
    """
    Raised when the payment processor rejects or fails an operation.

    The category lets callers tell a card-specific problem ("card declined")
    from a system problem ("try again later") without exposing the processor
    payload.
    """

    CARD_ERROR = "card_error"
    INVALID_REQUEST = "invalid_request"
    AUTHORIZATION_FAILED = "authorization_failed"
    PROCESSOR_ERROR = "processor_error"

    _STATUS_BY_CATEGORY = {
        CARD_ERROR: status.HTTP_400_BAD_REQUEST,
        INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
        AUTHORIZATION_FAILED: status.HTTP_402_PAYMENT_REQUIRED,
        PROCESSOR_ERROR: status.HTTP_502_BAD_GATEWAY,
    }
    _ERROR_BY_CATEGORY = {
        CARD_ERROR: "Card declined",
        INVALID_REQUEST: "Invalid request",
        AUTHORIZATION_FAILED: "Payment authorization failed",
        PROCESSOR_ERROR: "Payment processor error",
    }

    def __init__(
        self,
        message: str,
        *,
        category: str = PROCESSOR_ERROR,
        processor_code: Optional[str] = None,
        decline_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        if category not in self._STATUS_BY_CATEGORY:
            category = self.PROCESSOR_ERROR
        self.category = category
        self.processor_code = processor_code
        self.decline_code = decline_code
        merged: Dict[str, Any] = {"category": category}
        if processor_code:
            merged["processor_code"] = processor_code
        if decline_code:
            merged["decline_code"] = decline_code
        merged.update(details or {})
        super().__init__(message=message, code=category.upper(), details=merged)

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return self._STATUS_BY_CATEGORY[self.category]

    @property
    def error(self) -> str:  # type: ignore[override]
        return self._ERROR_BY_CATEGORY[self.category]


class PaymentConsistencyException(ServiceException):
    """
    Raised when the processor operation succeeded but the local update failed.

    Money may have moved without the booking reflecting it, so these are
    logged with a CRITICAL marker for manual reconciliation and are never
    retried automatically.
    """

    error = "Payment state inconsistent"

    def __init__(
        self,
        message: str,
        *,
        booking_id: str,
        payment_intent_id: Optional[str],
        outcome: Optional["CompensatedOutcome"] = None,
        released_payment_intent_ids: Optional[List[str]] = None,
    ):
        self.booking_id = booking_id
        self.payment_intent_id = payment_intent_id
        self.outcome = outcome
        self.released_payment_intent_ids = list(released_payment_intent_ids or [])
        details: Dict[str, Any] = {
            "booking_id": booking_id,
            "payment_intent_id": payment_intent_id,
        }
        if outcome is not None:
            details["compensation"] = outcome.compensation.describe()
        if self.released_payment_intent_ids:
            details["released_payment_intent_ids"] = self.released_payment_intent_ids
        super().__init__(message=message, code="PAYMENT_STATE_INCONSISTENT", details=details)


class WebhookSignatureException(ValidationException):
    """Raised when a webhook payload fails signature verification."""

    error = "Webhook Error"

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message=message, code="INVALID_WEBHOOK_SIGNATURE")


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
