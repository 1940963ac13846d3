"""
Database connection and session management.

Handles SQLite engine creation, schema initialization, and the session
context manager used by the repository layer.

Sessions are single-owner: they may only be used in the thread that created
them and within their scope.
"""
import logging
import os
import threading
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import NullPool

from chatrelay.core.config import get_database_url, settings
from chatrelay.core.memory.models import Base


logger = logging.getLogger(__name__)

# Simple debug flag for DB session lifecycle logging
DB_DEBUG_LOG = (
    settings.database_echo
    or os.getenv("DB_DEBUG_LOG", "0").lower() in ("1", "true", "yes")
)

# Global lock to ensure only one thread initializes the database at a time.
_init_lock = threading.Lock()


def create_db_engine(database_path: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create a SQLite engine for the given file.

    NullPool gives each session its own connection, so sessions never share a
    connection across threads.
    """
    engine = create_engine(
        get_database_url(database_path),
        connect_args={
            "timeout": 30,  # 30 second timeout for database operations
            "check_same_thread": False,
        },
        poolclass=NullPool,
        echo=settings.database_echo if echo is None else echo,
    )
    event.listen(engine, "connect", set_sqlite_pragma)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    """One Session instance per unit of work."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Initialize database schema (create tables). Safe to call repeatedly."""
    with _init_lock:
        try:
            Base.metadata.create_all(bind=engine)
            logger.info("Database schema initialized (%s)", engine.url)
        except Exception as e:
            logger.error("Failed to initialize database: %s", e, exc_info=True)
            raise


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Commits on success, rolls back on any exception and re-raises it.
    """
    db = factory()
    if DB_DEBUG_LOG:
        logger.debug(
            "DB session created id=%s thread_id=%s",
            id(db),
            threading.get_ident(),
        )
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        if DB_DEBUG_LOG:
            logger.debug(
                "DB session closing id=%s current_thread_id=%s",
                id(db),
                threading.get_ident(),
            )
        db.close()


def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints and WAL mode in SQLite."""
    cursor = dbapi_conn.cursor()
    # No foreign keys are declared yet; enforcement stays on for future tables
    cursor.execute("PRAGMA foreign_keys=ON")
    # Enable WAL mode for better concurrency (allows concurrent reads)
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()
