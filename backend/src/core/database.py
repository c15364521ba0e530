# pyright: reportMissingTypeStubs=false
"""
Database configuration and session management.

This module sets up SQLAlchemy database connection, session management,
and provides dependency injection for database sessions in FastAPI routes.
"""

import logging
from typing import Any, Dict, Generator

from fastapi import HTTPException
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.config import DATABASE_URL
from core.constants import DB_POOL_RECYCLE_SECONDS

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> Dict[str, Any]:
    """Engine options for the configured backend."""
    if url.startswith("sqlite"):
        # SQLite connections are shared across the threads FastAPI uses for sync work
        return {"connect_args": {"check_same_thread": False}, "future": True}
    return {
        "pool_pre_ping": True,  # Verify connections before use
        "pool_recycle": DB_POOL_RECYCLE_SECONDS,
        "echo": False,          # Disable SQL logging
        "future": True,         # Use SQLAlchemy 2.0 style
    }


def enable_sqlite_savepoints(sqlite_engine: Engine) -> None:
    """
    Let pysqlite honour SAVEPOINT.

    The driver manages BEGIN itself and breaks nested transactions; hand that
    over to SQLAlchemy so `Session.begin_nested()` works on SQLite.
    """
    @event.listens_for(sqlite_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):  # type: ignore
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _do_begin(conn):  # type: ignore
        conn.exec_driver_sql("BEGIN")


# Create SQLAlchemy engine with optimized settings
engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
if DATABASE_URL.startswith("sqlite"):
    enable_sqlite_savepoints(engine)

# Create configured SessionLocal class
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Don't expire objects after commit
)

# Create Base class for declarative models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# SQLAlchemy event listeners to automatically set created_at and updated_at in clinic local time
@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def receive_before_insert(mapper, connection, target):  # type: ignore
    """Set created_at and updated_at on insert."""
    # Import here to avoid circular import
    from utils.datetime_utils import clinic_now
    now = clinic_now()
    for column_name in ("created_at", "updated_at"):
        # Only set mapped columns; properties won't be in mapper.columns
        if column_name in mapper.columns and getattr(target, column_name, None) is None:  # type: ignore
            setattr(target, column_name, now)


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def receive_before_update(mapper, connection, target):  # type: ignore
    """Set updated_at on update."""
    # Import here to avoid circular import
    from utils.datetime_utils import clinic_now
    if "updated_at" in mapper.columns:  # type: ignore
        setattr(target, "updated_at", clinic_now())


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency to provide database sessions.

    Yields a database session that is automatically closed after the request.
    Handles cleanup even if an exception occurs during request processing.

    Yields:
        Session: SQLAlchemy database session

    Example:
        ```python
        @app.get("/items")
        def read_items(db: Session = Depends(get_db)):
            return db.query(Item).all()
        ```
    """
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.exception(f"Database error: {e}")
        db.rollback()
        raise
    except HTTPException:
        # Don't log HTTPExceptions as errors - they're expected business logic
        db.rollback()
        raise
    except Exception as e:
        logger.exception(f"Unexpected error in database session: {e}")
        db.rollback()
        raise
    finally:
        db.close()
