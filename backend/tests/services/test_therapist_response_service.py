from __future__ import annotations

import pytest

from booking_payments.core.exceptions import (
    BookingNotFoundException,
    BusinessRuleException,
    ConflictException,
    NotFoundException,
)
from booking_payments.models.booking import BookingStatus, PaymentStatus
from booking_payments.services.booking_audit_service import BookingAuditService
from booking_payments.services.therapist_response_service import (
    ACTION_ACCEPT,
    ACTION_DECLINE,
    TherapistResponseService,
)


@pytest.fixture
def service(db):
    return TherapistResponseService(db)


def test_accept_confirms_booking_and_keeps_hold(db, service, booking_factory, therapist):
    booking = booking_factory(payment_status=PaymentStatus.AUTHORIZED.value)

    result = service.respond(booking.booking_id, therapist.id, ACTION_ACCEPT)

    assert result.status == BookingStatus.CONFIRMED.value
    assert result.therapist_id == therapist.id
    assert result.payment_status == PaymentStatus.AUTHORIZED.value
    history = BookingAuditService(db).history(booking)
    assert [(h.status, h.changed_by) for h in history] == [
        (BookingStatus.CONFIRMED.value, therapist.id)
    ]
    assert history[0].notes == "Booking accepted by therapist: Sarah Mitchell"


def test_decline_records_reason(db, service, booking_factory, therapist):
    booking = booking_factory()

    result = service.respond(booking.booking_id, therapist.id, ACTION_DECLINE, reason="Unavailable")

    assert result.status == BookingStatus.DECLINED.value
    history = BookingAuditService(db).history(booking)
    assert history[0].notes == "Booking declined by therapist: Sarah Mitchell. Reason: Unavailable"


def test_second_response_conflicts(db, service, booking_factory, therapist):
    booking = booking_factory()
    service.respond(booking.booking_id, therapist.id, ACTION_ACCEPT)

    with pytest.raises(ConflictException) as exc_info:
        service.respond(booking.booking_id, therapist.id, ACTION_DECLINE)

    assert exc_info.value.code == "BOOKING_ALREADY_RESPONDED"
    assert "confirmed" in exc_info.value.message
    db.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED.value
    assert len(BookingAuditService(db).history(booking)) == 1


def test_booking_assigned_to_someone_else(service, booking_factory, therapist, therapist_factory):
    other = therapist_factory(first_name="Tom", email="tom@rejuvenators.test")
    booking = booking_factory(therapist_id=other.id)

    with pytest.raises(BusinessRuleException) as exc_info:
        service.respond(booking.booking_id, therapist.id, ACTION_ACCEPT)

    assert exc_info.value.code == "THERAPIST_MISMATCH"


def test_unknown_therapist(service, booking_factory):
    booking = booking_factory()

    with pytest.raises(NotFoundException):
        service.respond(booking.booking_id, "01HNOTHERAPIST0000000000000", ACTION_ACCEPT)


def test_unknown_booking(service, therapist):
    with pytest.raises(BookingNotFoundException):
        service.respond("RMM-NOPE", therapist.id, ACTION_ACCEPT)


def test_unknown_action(service, booking_factory, therapist):
    booking = booking_factory()

    with pytest.raises(BusinessRuleException) as exc_info:
        service.respond(booking.booking_id, therapist.id, "maybe")

    assert exc_info.value.code == "INVALID_ACTION"
