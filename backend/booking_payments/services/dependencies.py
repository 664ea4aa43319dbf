# backend/booking_payments/services/dependencies.py
"""
Dependency injection functions for services.

Routes receive fully built services; tests swap the gateway and the
database session through ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..integrations.stripe_gateway import StripeGateway
from .authorization_service import AuthorizationService
from .cancellation_service import CancellationService
from .completion_service import CompletionService
from .recovery_service import RecoveryService
from .template_service import TemplateService
from .therapist_response_service import TherapistResponseService
from .webhook_reconciler import WebhookReconciler


@lru_cache(maxsize=1)
def get_stripe_gateway() -> StripeGateway:
    """
    Process-wide Stripe gateway built from settings.

    Usage in routes:
        gateway: StripeGateway = Depends(get_stripe_gateway)
    """
    return StripeGateway()


@lru_cache(maxsize=1)
def get_template_service() -> TemplateService:
    return TemplateService()


def get_authorization_service(
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> AuthorizationService:
    return AuthorizationService(db, gateway)


def get_completion_service(
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> CompletionService:
    return CompletionService(db, gateway)


def get_cancellation_service(
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> CancellationService:
    return CancellationService(db, gateway)


def get_recovery_service(
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> RecoveryService:
    return RecoveryService(db, gateway)


def get_webhook_reconciler(db: Session = Depends(get_db)) -> WebhookReconciler:
    return WebhookReconciler(db)


def get_therapist_response_service(db: Session = Depends(get_db)) -> TherapistResponseService:
    return TherapistResponseService(db)
