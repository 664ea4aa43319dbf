from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

import pytest

from booking_payments.core.exceptions import (
    BookingNotFoundException,
    BusinessRuleException,
    InvalidBookingStatusException,
    NotFoundException,
    PaymentConsistencyException,
    PaymentProcessorException,
    RepositoryException,
    ValidationException,
)
from booking_payments.models.booking import BookingStatus, PaymentStatus
from booking_payments.services.booking_audit_service import BookingAuditService
from booking_payments.services.outcomes import NOT_ATTEMPTED
from booking_payments.services.recovery_service import HISTORY_RECOVERED, RecoveryService


@pytest.fixture
def declined_booking(booking_factory):
    return booking_factory(
        booking_id="RMM-DECLINED",
        payment_intent_id="pi_previous",
        status=BookingStatus.DECLINED.value,
        payment_status=PaymentStatus.AUTHORIZED.value,
    )


@pytest.fixture
def service(db, gateway):
    return RecoveryService(db, gateway)


def _recover(service, therapist_id, booking_id="RMM-DECLINED"):
    return service.recover_declined_booking(
        booking_id, "cus_test_1", Decimal("150.00"), therapist_id, "admin"
    )


def test_recovers_on_most_recent_card_and_releases_previous_hold(
    db, gateway, service, declined_booking, therapist
):
    result = _recover(service, therapist.id)

    _, kwargs = gateway.create_off_session_authorization.call_args
    assert kwargs["payment_method_id"] == "pm_card_latest"
    assert kwargs["metadata"]["recovered_from"] == "declined"
    assert kwargs["metadata"]["new_therapist_id"] == therapist.id
    assert result.card.last4 == "4242"
    assert result.amount == Decimal("150.00")
    assert result.previous_payment_intent_id == "pi_previous"
    assert result.previous_release.succeeded is True
    gateway.cancel.assert_called_once_with("pi_previous")

    db.refresh(declined_booking)
    assert declined_booking.status == BookingStatus.CONFIRMED.value
    assert declined_booking.payment_status == PaymentStatus.AUTHORIZED.value
    assert declined_booking.payment_intent_id == "pi_offsession_1"
    assert declined_booking.therapist_id == therapist.id
    assert declined_booking.stripe_payment_method_id == "pm_card_latest"
    history = BookingAuditService(db).history(declined_booking)
    assert [h.status for h in history] == [HISTORY_RECOVERED, BookingStatus.CONFIRMED.value]
    assert history[1].notes == "Booking confirmed with therapist: Sarah Mitchell"


def test_previous_hold_not_released_when_nothing_was_held(
    db, gateway, service, booking_factory, therapist
):
    booking_factory(
        booking_id="RMM-DECLINED",
        payment_intent_id="pi_previous",
        status=BookingStatus.DECLINED.value,
        payment_status=PaymentStatus.CANCELLED.value,
    )

    result = _recover(service, therapist.id)

    assert result.previous_release is NOT_ATTEMPTED
    gateway.cancel.assert_not_called()


def test_only_declined_bookings_are_recovered(gateway, service, booking_factory, therapist):
    booking_factory(booking_id="RMM-DECLINED", status=BookingStatus.CONFIRMED.value)

    with pytest.raises(InvalidBookingStatusException) as exc_info:
        _recover(service, therapist.id)

    assert exc_info.value.details["status"] == BookingStatus.CONFIRMED.value
    gateway.create_off_session_authorization.assert_not_called()


def test_unknown_booking(service, therapist):
    with pytest.raises(BookingNotFoundException):
        _recover(service, therapist.id, booking_id="RMM-NOPE")


def test_customer_without_saved_cards(gateway, service, declined_booking, therapist):
    gateway.list_saved_cards.return_value = []

    with pytest.raises(ValidationException) as exc_info:
        _recover(service, therapist.id)

    assert exc_info.value.code == "NO_SAVED_PAYMENT_METHODS"
    gateway.create_off_session_authorization.assert_not_called()


def test_missing_therapist(gateway, service, declined_booking):
    with pytest.raises(NotFoundException):
        _recover(service, "01HNOTHERAPIST0000000000000")
    gateway.create_off_session_authorization.assert_not_called()


def test_inactive_therapist(gateway, service, declined_booking, therapist_factory):
    inactive = therapist_factory(email="gone@rejuvenators.test", is_active=False)

    with pytest.raises(BusinessRuleException) as exc_info:
        _recover(service, inactive.id)

    assert exc_info.value.code == "THERAPIST_INACTIVE"


def test_declined_off_session_authorization(db, gateway, service, declined_booking, therapist, make_hold):
    gateway.create_off_session_authorization.return_value = make_hold(
        "pi_declined", status="requires_payment_method", last_payment_error="Card expired"
    )

    with pytest.raises(PaymentProcessorException) as exc_info:
        _recover(service, therapist.id)

    assert exc_info.value.status_code == 402
    assert exc_info.value.message == "Card expired"
    db.refresh(declined_booking)
    assert declined_booking.status == BookingStatus.DECLINED.value
    assert declined_booking.payment_intent_id == "pi_previous"


def test_failed_update_reports_compensation(db, gateway, service, declined_booking, therapist):
    with patch.object(
        service.booking_repository, "update", side_effect=RepositoryException("db down")
    ):
        with pytest.raises(PaymentConsistencyException) as exc_info:
            _recover(service, therapist.id)

    gateway.cancel.assert_called_once_with("pi_offsession_1")
    assert exc_info.value.details["compensation"] == {
        "attempted": True,
        "succeeded": True,
        "detail": "Released pi_offsession_1",
    }
    db.refresh(declined_booking)
    assert declined_booking.status == BookingStatus.DECLINED.value


def test_failed_compensation_is_reported_too(db, gateway, service, declined_booking, therapist):
    gateway.cancel.side_effect = PaymentProcessorException("processor unavailable")

    with patch.object(
        service.booking_repository, "update", side_effect=RepositoryException("db down")
    ):
        with pytest.raises(PaymentConsistencyException) as exc_info:
            _recover(service, therapist.id)

    compensation = exc_info.value.details["compensation"]
    assert compensation["attempted"] is True
    assert compensation["succeeded"] is False
    assert compensation["detail"] == "processor unavailable"
