# dailyloop/conftest.py
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Settings are read at import time; tests never touch a real database
os.environ.setdefault("ENV", "test")

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
TESTS_DIR = Path(__file__).resolve().parent / "tests"
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory SQLite database with every table created."""
    from dailyloop.core.database import create_all_tables

    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    create_all_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def catalog(session_factory):
    from dailyloop.features.catalog.service import HabitCatalog

    return HabitCatalog(session_factory)


@pytest.fixture(scope="function")
def repository(session_factory):
    from dailyloop.features.records.repository import SqlDayRecordRepository

    return SqlDayRecordRepository(session_factory)


@pytest.fixture(scope="function")
def memory_repository():
    from mocks import InMemoryDayRecordRepository

    return InMemoryDayRecordRepository()


@pytest.fixture(scope="function")
def clock():
    """Clock pinned to 2025-03-09 13:00 UTC (09:00 in New York, after the DST jump)."""
    from mocks import FixedClock

    return FixedClock(datetime(2025, 3, 9, 13, 0, tzinfo=timezone.utc))


@pytest.fixture(scope="function")
def sequence_service(repository, catalog, clock):
    from dailyloop.features.sequences.service import SequenceService

    return SequenceService(repository, catalog, clock=clock, notice_limit=5)


@pytest.fixture(scope="function")
def api_client(sequence_service, catalog):
    """TestClient wired to the SQLite-backed catalog and sequence service."""
    from fastapi.testclient import TestClient

    from dailyloop.api.habits import get_habit_catalog
    from dailyloop.features.sequences.service import get_sequence_service
    from dailyloop.main import app

    app.dependency_overrides[get_sequence_service] = lambda: sequence_service
    app.dependency_overrides[get_habit_catalog] = lambda: catalog
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
