"""Database connection and session management."""

from typing import Generator

from sqlalchemy.orm import Session

from src.services.config import get_settings
from src.services.db import build_engine, build_session_factory

# Engine is created lazily by SQLAlchemy on first connect; URL comes from settings
_settings = get_settings()
engine = build_engine(_settings.database_url, echo=_settings.database_echo)

# Create session factory
SessionLocal = build_session_factory(engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


__all__ = [
    "engine",
    "SessionLocal",
    "get_db",
]
