# backend/booking_payments/routes/__init__.py
from . import bookings, monitoring, payments, stripe_webhooks

__all__ = ["bookings", "monitoring", "payments", "stripe_webhooks"]
