"""
Engine and session factory for the SQL-backed Order Store.

The fulfillment worker builds one engine per process. SqlOrderStore opens a
short session per call through session_scope().

Usage:
    from orderflow.database.session import get_session_factory
    from orderflow.store.sql import SqlOrderStore

    store = SqlOrderStore(get_session_factory())

Environment:
    DATABASE_URL        postgres://, postgresql:// or sqlite:// URL
    DATABASE_POOL_SIZE  pooled connections for server databases (default 5)
"""

import os
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 5

# Process-wide singletons
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def normalize_database_url(database_url: Optional[str]) -> str:
    """
    Validate a database URL and rewrite postgres:// to postgresql://.

    Raises:
        ValueError: If the URL is empty
    """
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is not set")

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        # The processor calls the store from the event loop thread only
        return {"connect_args": {"check_same_thread": False}}

    pool_size = int(os.getenv("DATABASE_POOL_SIZE", str(DEFAULT_POOL_SIZE)))
    return {
        "pool_size": pool_size,
        "max_overflow": pool_size * 2,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
    }


def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    Get or create the engine singleton.

    Args:
        database_url: Explicit URL (default: DATABASE_URL)
    """
    global _engine
    if _engine is None:
        try:
            url = normalize_database_url(database_url or os.getenv("DATABASE_URL"))
        except ValueError as e:
            logger.error("Failed to create database engine", extra={"error": str(e)})
            raise
        _engine = create_engine(url, **_engine_options(url))
        logger.info("Database engine created", extra={"dialect": _engine.dialect.name})
    return _engine


def get_session_factory(database_url: Optional[str] = None) -> sessionmaker:
    """Get or create the session factory bound to get_engine()."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=get_engine(database_url),
        )
    return _session_factory


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """Commit on success, roll back on error, always close."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def reset_engine() -> None:
    """Dispose of the engine singleton (for tests only)."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
