from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

import pytest

from booking_payments.core.exceptions import (
    BusinessRuleException,
    ConflictException,
    InvalidBookingStatusException,
    NotFoundException,
    PaymentConsistencyException,
    PaymentProcessorException,
    RepositoryException,
)
from booking_payments.models.booking import BookingStatus, PaymentStatus
from booking_payments.schemas.payment_schemas import BookingAuthorizationData
from booking_payments.services.authorization_service import (
    HISTORY_OCCURRENCE_AUTHORIZATION_FAILED,
    HISTORY_OCCURRENCE_AUTHORIZED,
    AuthorizationService,
)
from booking_payments.services.booking_audit_service import BookingAuditService


def _booking_data(booking_id: str = "RMM-2001") -> BookingAuthorizationData:
    return BookingAuthorizationData(
        booking_id=booking_id,
        customer_email="jane@example.com",
        customer_name="Jane Customer",
        service_name="Remedial Massage",
        booking_time="2026-11-02T10:00:00+11:00",
        therapist_fee=Decimal("85.00"),
    )


class TestCreateAuthorization:
    def test_places_manual_capture_hold_with_booking_metadata(self, db, gateway):
        service = AuthorizationService(db, gateway)

        result = service.create_authorization(Decimal("150.00"), _booking_data())

        gateway.find_or_create_customer.assert_called_once_with("jane@example.com", "Jane Customer")
        args, kwargs = gateway.create_authorization.call_args
        assert args == (Decimal("150.00"),)
        assert kwargs["customer_id"] == "cus_test_1"
        assert kwargs["description"] == "Massage Booking Authorization - Remedial Massage"
        assert kwargs["metadata"]["booking_id"] == "RMM-2001"
        assert kwargs["metadata"]["therapist_fee"] == Decimal("85.00")
        assert result.client_secret == "pi_new_1_secret_abc"
        assert result.payment_intent_id == "pi_new_1"
        assert result.amount == 12000
        assert result.attached_to_booking is False

    def test_attaches_hold_to_existing_booking_without_authorizing_it(
        self, db, gateway, booking_factory
    ):
        booking = booking_factory(
            booking_id="RMM-2001",
            payment_intent_id=None,
            stripe_customer_id=None,
            payment_status=PaymentStatus.PENDING.value,
        )
        service = AuthorizationService(db, gateway)

        result = service.create_authorization(Decimal("150.00"), _booking_data())

        db.refresh(booking)
        assert result.attached_to_booking is True
        assert booking.payment_intent_id == "pi_new_1"
        assert booking.stripe_customer_id == "cus_test_1"
        assert booking.payment_status == PaymentStatus.AUTHORIZATION_PENDING.value
        assert booking.status == BookingStatus.REQUESTED.value
        assert BookingAuditService(db).history(booking) == []

    def test_does_not_replace_an_authorized_hold(self, db, gateway, booking_factory):
        booking = booking_factory(
            booking_id="RMM-2001",
            payment_intent_id="pi_existing",
            payment_status=PaymentStatus.AUTHORIZED.value,
        )
        service = AuthorizationService(db, gateway)

        result = service.create_authorization(Decimal("150.00"), _booking_data())

        db.refresh(booking)
        assert result.attached_to_booking is False
        assert booking.payment_intent_id == "pi_existing"
        assert booking.payment_status == PaymentStatus.AUTHORIZED.value

    def test_processor_rejection_propagates_and_leaves_booking_alone(
        self, db, gateway, booking_factory
    ):
        booking = booking_factory(
            booking_id="RMM-2001", payment_intent_id=None, payment_status=PaymentStatus.PENDING.value
        )
        gateway.create_authorization.side_effect = PaymentProcessorException(
            "Your card was declined.",
            category=PaymentProcessorException.CARD_ERROR,
            decline_code="insufficient_funds",
        )
        service = AuthorizationService(db, gateway)

        with pytest.raises(PaymentProcessorException) as exc_info:
            service.create_authorization(Decimal("150.00"), _booking_data())

        assert exc_info.value.status_code == 400
        assert exc_info.value.details["decline_code"] == "insufficient_funds"
        db.refresh(booking)
        assert booking.payment_intent_id is None
        assert booking.payment_status == PaymentStatus.PENDING.value


class TestAuthorizeOccurrence:
    @pytest.fixture
    def series(self, booking_factory, occurrence_factory):
        booking = booking_factory(
            booking_id="RMM-SERIES",
            is_recurring=True,
            status=BookingStatus.CONFIRMED.value,
            payment_status=PaymentStatus.AUTHORIZED.value,
            stripe_customer_id="cus_series",
            stripe_payment_method_id="pm_series",
        )
        occurrence = occurrence_factory(booking, 2)
        return booking, occurrence

    def test_authorizes_occurrence_off_session(self, db, gateway, series):
        booking, occurrence = series
        service = AuthorizationService(db, gateway)

        result = service.authorize_occurrence("RMM-SERIES", 2, Decimal("120.00"))

        _, kwargs = gateway.create_off_session_authorization.call_args
        assert kwargs["customer_id"] == "cus_series"
        assert kwargs["payment_method_id"] == "pm_series"
        assert kwargs["metadata"]["occurrence_number"] == 2
        assert result.id == occurrence.id
        assert result.payment_intent_id == "pi_offsession_1"
        assert result.payment_status == PaymentStatus.AUTHORIZED.value
        statuses = [h.status for h in BookingAuditService(db).history(booking)]
        assert statuses == [HISTORY_OCCURRENCE_AUTHORIZED]

    def test_declined_card_is_recorded_on_the_occurrence(self, db, gateway, series):
        booking, occurrence = series
        gateway.create_off_session_authorization.side_effect = PaymentProcessorException(
            "Your card has insufficient funds.",
            category=PaymentProcessorException.CARD_ERROR,
        )
        service = AuthorizationService(db, gateway)

        with pytest.raises(PaymentProcessorException):
            service.authorize_occurrence("RMM-SERIES", 2, Decimal("120.00"))

        db.refresh(occurrence)
        assert occurrence.payment_status == PaymentStatus.AUTHORIZATION_FAILED.value
        assert occurrence.payment_error == "Your card has insufficient funds."
        history = BookingAuditService(db).history(booking)
        assert [h.status for h in history] == [HISTORY_OCCURRENCE_AUTHORIZATION_FAILED]

    def test_intent_not_requiring_capture_is_a_failed_authorization(
        self, db, gateway, series, make_hold
    ):
        _, occurrence = series
        gateway.create_off_session_authorization.return_value = make_hold(
            "pi_needs_action",
            status="requires_action",
            last_payment_error="Authentication required",
        )
        service = AuthorizationService(db, gateway)

        with pytest.raises(PaymentProcessorException) as exc_info:
            service.authorize_occurrence("RMM-SERIES", 2, Decimal("120.00"))

        assert exc_info.value.status_code == 402
        db.refresh(occurrence)
        assert occurrence.payment_intent_id == "pi_needs_action"
        assert occurrence.payment_status == PaymentStatus.AUTHORIZATION_FAILED.value

    def test_rejects_non_recurring_booking(self, db, gateway, booking_factory):
        booking_factory(booking_id="RMM-SINGLE", status=BookingStatus.CONFIRMED.value)
        service = AuthorizationService(db, gateway)

        with pytest.raises(BusinessRuleException):
            service.authorize_occurrence("RMM-SINGLE", 1, Decimal("120.00"))
        gateway.create_off_session_authorization.assert_not_called()

    def test_rejects_cancelled_series(self, db, gateway, booking_factory, occurrence_factory):
        booking = booking_factory(
            booking_id="RMM-GONE", is_recurring=True, status=BookingStatus.CANCELLED.value
        )
        occurrence_factory(booking, 2)
        service = AuthorizationService(db, gateway)

        with pytest.raises(InvalidBookingStatusException):
            service.authorize_occurrence("RMM-GONE", 2, Decimal("120.00"))

    def test_unknown_occurrence(self, db, gateway, series):
        service = AuthorizationService(db, gateway)

        with pytest.raises(NotFoundException):
            service.authorize_occurrence("RMM-SERIES", 9, Decimal("120.00"))

    def test_already_authorized_occurrence_conflicts(self, db, gateway, series):
        _, occurrence = series
        occurrence.payment_status = PaymentStatus.AUTHORIZED.value
        db.commit()
        service = AuthorizationService(db, gateway)

        with pytest.raises(ConflictException):
            service.authorize_occurrence("RMM-SERIES", 2, Decimal("120.00"))
        gateway.create_off_session_authorization.assert_not_called()

    def test_requires_saved_card(self, db, gateway, booking_factory, occurrence_factory):
        booking = booking_factory(
            booking_id="RMM-NOCARD",
            is_recurring=True,
            status=BookingStatus.CONFIRMED.value,
            stripe_payment_method_id=None,
        )
        occurrence_factory(booking, 2)
        service = AuthorizationService(db, gateway)

        with pytest.raises(BusinessRuleException) as exc_info:
            service.authorize_occurrence("RMM-NOCARD", 2, Decimal("120.00"))
        assert exc_info.value.code == "NO_SAVED_PAYMENT_METHOD"

    def test_failed_update_releases_the_new_hold(self, db, gateway, series):
        _, occurrence = series
        service = AuthorizationService(db, gateway)

        with patch.object(
            service.booking_repository,
            "update_occurrence",
            side_effect=RepositoryException("database unavailable"),
        ):
            with pytest.raises(PaymentConsistencyException) as exc_info:
                service.authorize_occurrence("RMM-SERIES", 2, Decimal("120.00"))

        gateway.cancel.assert_called_once_with("pi_offsession_1")
        compensation = exc_info.value.details["compensation"]
        assert compensation == {"attempted": True, "succeeded": True, "detail": "Released pi_offsession_1"}
        db.refresh(occurrence)
        assert occurrence.payment_status == PaymentStatus.PENDING.value
