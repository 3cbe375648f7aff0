"""Database engine and sessions.

WHAT:
    Builds the SQLAlchemy engine from DATABASE_URL and hands out sessions:
    `get_db` for FastAPI routes, `get_sync_session` for scripts.

WHY:
    Services take an explicit `Session` and commit at their own checkpoints
    (job transitions, per-campaign structure writes), so neither helper
    commits on the caller's behalf. Tests build their own in-memory engine
    and override `get_db`.

REFERENCES:
    - app/tests/conftest.py (in-memory engine)
    - alembic/env.py (migrations use DATABASE_URL)
    - scripts/sync_google_ads.py
"""

import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def _get_database_url() -> str:
    """DATABASE_URL from the environment, falling back to backend/.env.

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        from app.utils.env import load_env_file
        load_env_file()
        database_url = os.getenv("DATABASE_URL")

    if not database_url:
        raise RuntimeError(
            "DATABASE_URL is not set. "
            "Ensure backend/.env is loaded or env var is exported."
        )

    # Heroku/Supabase style URLs are not accepted by SQLAlchemy 2.x
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def build_engine(url: str) -> Engine:
    """Engine with pooling for Postgres; SQLite (tests/dev) takes no pool options."""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


DATABASE_URL = _get_database_url()
engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for FastAPI dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """Session for code running outside a request (CLI syncs, one-off jobs).

    Uncommitted work is rolled back on error.

    Example:
        with get_sync_session() as db:
            customers = db.query(AdsCustomer).all()
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
