# backend/tests/conftest.py
"""
Pytest configuration for the booking payments service.

Each test gets its own in-memory SQLite database built from the ORM
metadata. Services commit and roll back for real, so fixture data is
committed too and isolation comes from dropping the database afterwards.
"""

import os

# Set before any booking_payments import so Settings never points at a real database
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, Optional
from unittest.mock import MagicMock

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from booking_payments import models  # noqa: F401
from booking_payments.database import Base, get_db
from booking_payments.integrations.stripe_gateway import (
    INTENT_CANCELED,
    INTENT_REQUIRES_CAPTURE,
    INTENT_SUCCEEDED,
    AuthorizationHold,
    SavedCard,
    StripeGateway,
)
from booking_payments.main import app
from booking_payments.models.booking import Booking, BookingOccurrence, BookingStatus, PaymentStatus
from booking_payments.models.system_setting import SystemSetting
from booking_payments.models.therapist import TherapistProfile
from booking_payments.schemas.webhook_events import parse_webhook_event
from booking_payments.services.dependencies import get_stripe_gateway
from booking_payments.utils.time_utils import utc_now

# ============================================================================
# DATABASE
# ============================================================================


@pytest.fixture
def db() -> Iterator[Session]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


# ============================================================================
# FACTORIES
# ============================================================================


@pytest.fixture
def therapist_factory(db: Session) -> Callable[..., TherapistProfile]:
    def _create(**overrides: Any) -> TherapistProfile:
        data: Dict[str, Any] = {
            "first_name": "Sarah",
            "last_name": "Mitchell",
            "email": "sarah@rejuvenators.test",
            "phone": "0400 000 001",
            "is_active": True,
        }
        data.update(overrides)
        therapist = TherapistProfile(**data)
        db.add(therapist)
        db.commit()
        return therapist

    return _create


@pytest.fixture
def therapist(therapist_factory: Callable[..., TherapistProfile]) -> TherapistProfile:
    return therapist_factory()


@pytest.fixture
def booking_factory(db: Session) -> Callable[..., Booking]:
    counter = {"n": 0}

    def _create(**overrides: Any) -> Booking:
        counter["n"] += 1
        data: Dict[str, Any] = {
            "booking_id": f"RMM-{1000 + counter['n']}",
            "customer_email": "jane@example.com",
            "customer_name": "Jane Customer",
            "service_name": "Relaxation Massage",
            "booking_time": utc_now() + timedelta(days=3),
            "duration_minutes": 60,
            "price": Decimal("120.00"),
            "therapist_fee": Decimal("80.00"),
            "payment_intent_id": f"pi_test_{counter['n']}",
            "stripe_customer_id": "cus_test_1",
            "status": BookingStatus.REQUESTED.value,
            "payment_status": PaymentStatus.AUTHORIZATION_PENDING.value,
        }
        data.update(overrides)
        booking = Booking(**data)
        db.add(booking)
        db.commit()
        return booking

    return _create


@pytest.fixture
def occurrence_factory(db: Session) -> Callable[..., BookingOccurrence]:
    def _create(booking: Booking, occurrence_number: int, **overrides: Any) -> BookingOccurrence:
        data: Dict[str, Any] = {
            "booking_id": booking.id,
            "occurrence_number": occurrence_number,
            "booking_time": utc_now() + timedelta(days=7 * occurrence_number),
            "status": BookingStatus.CONFIRMED.value,
            "payment_status": PaymentStatus.PENDING.value,
        }
        data.update(overrides)
        occurrence = BookingOccurrence(**data)
        db.add(occurrence)
        db.commit()
        return occurrence

    return _create


@pytest.fixture
def set_setting(db: Session) -> Callable[[str, Optional[str]], None]:
    def _set(key: str, value: Optional[str]) -> None:
        db.merge(SystemSetting(key=key, value=value))
        db.commit()

    return _set


# ============================================================================
# PAYMENT PROCESSOR
# ============================================================================


@pytest.fixture
def make_hold() -> Callable[..., AuthorizationHold]:
    def _make(
        payment_intent_id: str = "pi_new_1",
        status: str = INTENT_REQUIRES_CAPTURE,
        amount: int = 12000,
        **extra: Any,
    ) -> AuthorizationHold:
        return AuthorizationHold(
            payment_intent_id=payment_intent_id,
            status=status,
            amount=amount,
            currency=extra.pop("currency", "aud"),
            **extra,
        )

    return _make


@pytest.fixture
def gateway(make_hold: Callable[..., AuthorizationHold]) -> MagicMock:
    """Processor double with happy-path defaults; tests override per call."""
    mock = MagicMock(spec=StripeGateway)
    mock.find_or_create_customer.return_value = "cus_test_1"
    mock.create_authorization.return_value = make_hold(
        "pi_new_1", status="requires_payment_method", client_secret="pi_new_1_secret_abc"
    )
    mock.create_off_session_authorization.return_value = make_hold(
        "pi_offsession_1", payment_method_id="pm_card_latest"
    )
    mock.capture.side_effect = lambda pi: make_hold(pi, status=INTENT_SUCCEEDED, amount_received=12000)
    mock.cancel.side_effect = lambda pi: make_hold(pi, status=INTENT_CANCELED)
    mock.list_saved_cards.return_value = [
        SavedCard(id="pm_card_latest", brand="visa", last4="4242", created=2000),
        SavedCard(id="pm_card_old", brand="mastercard", last4="4444", created=1000),
    ]
    return mock


# ============================================================================
# WEBHOOK EVENTS
# ============================================================================


@pytest.fixture
def stripe_event() -> Callable[..., Dict[str, Any]]:
    """Raw Stripe event payload for a payment intent."""

    def _event(
        event_type: str,
        payment_intent_id: str,
        booking_id: Optional[str] = None,
        **intent_fields: Any,
    ) -> Dict[str, Any]:
        intent: Dict[str, Any] = {
            "id": payment_intent_id,
            "object": "payment_intent",
            "amount": 12000,
            "metadata": {"booking_id": booking_id} if booking_id else {},
        }
        intent.update(intent_fields)
        return {
            "id": f"evt_{payment_intent_id}_{event_type.split('.')[-1]}",
            "type": event_type,
            "data": {"object": intent},
        }

    return _event


@pytest.fixture
def webhook_event(stripe_event: Callable[..., Dict[str, Any]]) -> Callable[..., Any]:
    """Typed event as the reconciler receives it."""

    def _event(*args: Any, **kwargs: Any) -> Any:
        return parse_webhook_event(stripe_event(*args, **kwargs))

    return _event


# ============================================================================
# HTTP CLIENT
# ============================================================================


@pytest.fixture
def client(db: Session, gateway: MagicMock) -> Iterator[TestClient]:
    def override_get_db() -> Iterator[Session]:
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()

