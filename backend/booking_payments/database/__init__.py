# backend/booking_payments/database/__init__.py
"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

import logging
from typing import Any, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from ..core.config import settings

logger = logging.getLogger(__name__)

# Engine tuning for Supabase/Supavisor:
# - pool_pre_ping + pool_recycle keep stale pooled connections from hanging around.
# - SQLite (local and tests) needs cross-thread access for the TestClient worker thread.
_DEFAULT_POOL_KWARGS: dict[str, Any] = {
    "pool_size": 3,
    "max_overflow": 5,
    "pool_timeout": 5,
    "pool_recycle": 30,
    "pool_pre_ping": True,
}


def is_sqlite_url(url: str) -> bool:
    return url.startswith("sqlite")


def _build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Engine options for the configured backend."""
    if is_sqlite_url(db_url):
        return {"connect_args": {"check_same_thread": False}, "future": True}

    kwargs = dict(_DEFAULT_POOL_KWARGS)
    kwargs["future"] = True
    kwargs["connect_args"] = {
        "connect_timeout": 5,
        "application_name": "booking_payments",
    }
    return kwargs


engine: Engine = create_engine(settings.database_url, **_build_engine_kwargs(settings.database_url))


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create tables for local SQLite runs; Postgres is managed by Alembic."""
    from .. import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")
    logger.info(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")


__all__ = ["Base", "SessionLocal", "engine", "get_db", "init_db", "is_sqlite_url"]
