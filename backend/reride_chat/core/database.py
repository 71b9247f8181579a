"""
Database utilities and connection management.

WHAT: SQLAlchemy engine, session factory and lifecycle helpers
WHY: Conversations and their messages must survive restarts
HOW: SQLAlchemy 2 sync engine (SQLite with WAL by default), scoped sessions
"""

from sqlalchemy import create_engine, text, event
from sqlalchemy.orm import sessionmaker, declarative_base
from contextlib import contextmanager
from pathlib import Path

from .config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

IS_SQLITE = settings.DATABASE_URL.startswith("sqlite")

if IS_SQLITE and ":memory:" not in settings.DATABASE_URL:
    data_dir = Path(settings.DATABASE_URL.replace("sqlite:///", "")).parent
    data_dir.mkdir(parents=True, exist_ok=True)

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if IS_SQLITE else {},
    echo=settings.DEBUG,
    future=True
)


if IS_SQLITE:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable WAL and foreign keys on every new SQLite connection."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


SessionLocal = sessionmaker(
    bind=engine,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False
)

Base = declarative_base()


@contextmanager
def get_db():
    """
    Context manager for a database session (one transaction).

    Usage:
        with get_db() as db:
            db.add(record)

    Yields:
        Session: SQLAlchemy session, committed on success, rolled back on error
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def ping_database() -> dict:
    """
    Check database connectivity.

    Returns:
        Dict with status and info
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        return {"available": True, "url": settings.DATABASE_URL, "error": None}
    except Exception as e:
        logger.error(f"Database ping failed: {e}")
        return {"available": False, "url": settings.DATABASE_URL, "error": str(e)}


def init_db():
    """Create all tables."""
    # Register ORM models on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialized ({engine.url.get_backend_name()})")


def close_db():
    """Close database connections."""
    engine.dispose()
    logger.info("Database connections closed")
