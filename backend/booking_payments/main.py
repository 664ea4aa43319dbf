# backend/booking_payments/main.py
"""
FastAPI application for the booking payments service.

Run locally with ``python run.py`` from ``backend/`` or
``uvicorn booking_payments.main:app``.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import FastAPI

from .core.config import settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION
from .database import init_db, is_sqlite_url
from .errors import register_error_handlers
from .routes import bookings, monitoring, payments, stripe_webhooks

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(f"Starting {API_TITLE} v{API_VERSION} ({settings.environment})")
    if not settings.stripe_secret_key.get_secret_value():
        logger.warning("STRIPE_SECRET_KEY is not set; payment endpoints will fail")
    if not settings.stripe_webhook_secret.get_secret_value():
        logger.warning("STRIPE_WEBHOOK_SECRET is not set; webhooks will be rejected")
    # Postgres schema is managed by Alembic; SQLite is created on the fly
    if is_sqlite_url(settings.database_url):
        init_db()
    yield
    logger.info(f"Shutting down {API_TITLE}")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)

register_error_handlers(app)

app.include_router(payments.router)
app.include_router(stripe_webhooks.router)
app.include_router(bookings.router)
app.include_router(monitoring.router)
