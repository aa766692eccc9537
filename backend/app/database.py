"""Database engine construction and the per-request session dependency.

The engine is built by the composition root (``app.main.create_app``) and kept
on ``app.state``; nothing here holds a process-wide connection.
"""
import logging
from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()


class StorageUnavailable(RuntimeError):
    """Raised by writes when no database is configured or reachable."""

    def __init__(self, message: str = "Database not available"):
        super().__init__(message)


def build_engine(database_url: str) -> Optional[Engine]:
    """Create an engine for ``database_url``; ``None`` when no URL is configured."""
    if not database_url:
        logger.warning("DATABASE_URL is empty; running without storage")
        return None
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


def build_session_factory(engine: Optional[Engine]) -> Optional[sessionmaker]:
    if engine is None:
        return None
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db(request: Request) -> Iterator[Optional[Session]]:
    """Yield a session bound to the app's engine, or ``None`` without storage."""
    session_factory = request.app.state.session_factory
    if session_factory is None:
        yield None
        return
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
