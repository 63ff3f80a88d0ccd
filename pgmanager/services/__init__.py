"""Database connection and session management."""

from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pgmanager.config import settings


def build_engine(database_url: str, timeout_seconds: int = settings.db_timeout_seconds) -> Engine:
    """Create an engine whose store calls give up after a bounded time.

    SQLite waits at most ``timeout_seconds`` on a locked database; PostgreSQL
    cancels statements running longer than that. Both surface as
    OperationalError, which the services translate into a retryable error.
    """
    if database_url.startswith("sqlite"):
        # In-memory databases live on a single connection
        pool_args = {"poolclass": StaticPool} if ":memory:" in database_url else {}
        new_engine = create_engine(
            database_url,
            echo=settings.database_echo,
            connect_args={"check_same_thread": False, "timeout": timeout_seconds},
            **pool_args,
        )

        @event.listens_for(new_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return new_engine

    return create_engine(
        database_url,
        echo=settings.database_echo,
        pool_pre_ping=True,
        pool_timeout=timeout_seconds,
        connect_args={
            "connect_timeout": timeout_seconds,
            "options": f"-c statement_timeout={timeout_seconds * 1000}",
        },
    )


engine = build_engine(settings.database_url)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


__all__ = [
    "build_engine",
    "engine",
    "SessionLocal",
    "get_db",
]
