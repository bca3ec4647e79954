"""Database engine and session factory."""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.models import Base


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for the given URL.

    SQLite uses StaticPool so an in-memory database is shared by every session.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables (development and tests; no migrations)."""
    Base.metadata.create_all(engine)


@contextmanager
def create_session(database_url: str, echo: bool = False) -> Iterator[Session]:
    """
    Create a database session for a one-off run (CLI).

    Args:
        database_url: SQLAlchemy database URL (e.g., "sqlite:///./water_billing.db")
        echo: Log SQL statements

    Yields:
        SQLAlchemy Session, closed and engine disposed afterwards
    """
    engine = build_engine(database_url, echo=echo)
    init_db(engine)
    session = build_session_factory(engine)()

    try:
        yield session
    finally:
        session.close()
        engine.dispose()


__all__ = ["build_engine", "build_session_factory", "init_db", "create_session"]
