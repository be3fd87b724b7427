"""
Database engine, sessions and table definitions.

The engine is created lazily from TEST_DATABASE_URL or DATABASE_URL the
first time a session is needed, so the app imports and answers /healthz
without a database. SQLite gets a single shared connection (StaticPool)
so an in-memory database survives across sessions and worker threads.
"""
import logging
import os
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, JSON, Text, Index, UniqueConstraint
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func

from dailyloop.core.config import settings
from dailyloop.core.errors import ConfigurationError

logger = logging.getLogger("dailyloop")

metadata = MetaData()

# Server databases only; SQLite ignores pool sizing
POOL_OPTIONS = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 30,
    "pool_recycle": 3600,
    "pool_pre_ping": True,
}

_engine: Optional[Engine] = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """TEST_DATABASE_URL (environment first, then settings) wins over DATABASE_URL."""
    return os.getenv("TEST_DATABASE_URL") or settings.TEST_DATABASE_URL or settings.DATABASE_URL


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {"poolclass": QueuePool, **POOL_OPTIONS}


def init_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create the process engine and session factory.

    Raises:
        ConfigurationError: no database URL is configured; sequences cannot
            start without their persistence collaborator.
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()
    if not url:
        raise ConfigurationError("DATABASE_URL is not configured. Set DATABASE_URL in environment or .env file.")

    _engine = create_engine(url, echo=False, **_engine_kwargs(url))
    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    logger.info(f"Database engine initialised ({_engine.dialect.name})")
    return _engine


def reset_engine() -> None:
    """Forget the current engine so the next call re-reads configuration."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session(session_factory=None):
    """
    Commit on success, roll back and re-raise on any error.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables(engine=None) -> None:
    """Create missing tables; existing ones are left untouched."""
    metadata.create_all(bind=engine or get_engine())


# Profile (timezone lives here; the rest of the profile is managed elsewhere)
profiles = Table(
    'profiles',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('timezone', String(64), nullable=True),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Habit catalog
habits = Table(
    'habits',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('name', Text, nullable=False),
    Column('timing', String(16), nullable=False),
    Column('sort_order', Integer, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # list_habits pattern: (user_id, timing, sort_order)
    Index('idx_habits_user_timing_order', 'user_id', 'timing', 'sort_order'),
)

# One row per (user, local day)
daily_logs = Table(
    'daily_logs',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('user_id', String(100), nullable=False),
    Column('log_date', String(10), nullable=False),
    Column('prev_evening_rating', Integer, nullable=True),
    Column('sleep_rating', Integer, nullable=True),
    Column('morning_rating', Integer, nullable=True),
    Column('day_rating', Integer, nullable=True),
    Column('feeling_morning', Text, nullable=True),
    Column('accomplishment', Text, nullable=True),
    Column('improvement', Text, nullable=True),
    Column('completed_am_habits', JSON, nullable=False, default=list),
    Column('completed_pm_anytime_habits', JSON, nullable=False, default=list),
    Column('deferred_from_startup', JSON, nullable=False, default=list),
    Column('deferred_from_shutdown', JSON, nullable=False, default=list),
    Column('startup_completed_at', DateTime(timezone=True), nullable=True),
    Column('shutdown_completed_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    UniqueConstraint('user_id', 'log_date', name='uq_daily_logs_user_date'),
)
