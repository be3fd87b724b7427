"""Sequence session lifecycle."""

import threading

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import OperationalError

from dailyloop.core.errors import NotFoundError, SessionInitError
from dailyloop.features.sequences.runner import RunStatus
from dailyloop.models.sequence import SequenceFragment, SequenceType

USER = "user-1"


@pytest.mark.asyncio
async def test_start_replaces_unfinished_run(sequence_service):
    first = await sequence_service.start(USER, SequenceType.STARTUP)
    await first.on_next(SequenceFragment(prev_evening_rating=2))
    second = await sequence_service.start(USER, SequenceType.STARTUP)
    assert sequence_service.get(USER, SequenceType.STARTUP) is second
    assert second.index == 0
    assert second.collected == {}


@pytest.mark.asyncio
async def test_runs_are_per_user_and_sequence(sequence_service):
    startup = await sequence_service.start(USER, SequenceType.STARTUP)
    shutdown = await sequence_service.start(USER, SequenceType.SHUTDOWN)
    assert sequence_service.get(USER, SequenceType.STARTUP) is startup
    assert sequence_service.get(USER, SequenceType.SHUTDOWN) is shutdown
    with pytest.raises(NotFoundError):
        sequence_service.get("user-2", SequenceType.STARTUP)


@pytest.mark.asyncio
async def test_release_only_forgets_finished_runs(sequence_service):
    runner = await sequence_service.start(USER, SequenceType.STARTUP)
    sequence_service.release(USER, SequenceType.STARTUP)
    assert sequence_service.get(USER, SequenceType.STARTUP) is runner

    assert runner.on_back() == RunStatus.EXITED
    sequence_service.release(USER, SequenceType.STARTUP)
    with pytest.raises(NotFoundError):
        sequence_service.get(USER, SequenceType.STARTUP)


@pytest.mark.asyncio
async def test_catalog_failure_is_session_init_error(sequence_service, catalog, monkeypatch):
    def broken(user_id):
        raise OperationalError("SELECT 1", {}, Exception("db down"))

    monkeypatch.setattr(catalog, "get_user_timezone", broken)
    with pytest.raises(SessionInitError):
        await sequence_service.start(USER, SequenceType.STARTUP)


@pytest.mark.asyncio
async def test_catalog_reads_run_off_the_event_loop_thread(sequence_service, catalog, monkeypatch):
    seen = []
    get_user_timezone = catalog.get_user_timezone
    list_habits = catalog.list_habits

    def tracked_timezone(user_id):
        seen.append(threading.current_thread())
        return get_user_timezone(user_id)

    def tracked_habits(user_id):
        seen.append(threading.current_thread())
        return list_habits(user_id)

    monkeypatch.setattr(catalog, "get_user_timezone", tracked_timezone)
    monkeypatch.setattr(catalog, "list_habits", tracked_habits)
    await sequence_service.start(USER, SequenceType.STARTUP)

    assert len(seen) == 2
    assert all(thread is not threading.current_thread() for thread in seen)


def test_fragment_rejects_out_of_range_and_unknown_fields():
    with pytest.raises(PydanticValidationError):
        SequenceFragment(sleep_rating=0)
    with pytest.raises(PydanticValidationError):
        SequenceFragment(mood=3)
    assert SequenceFragment(accomplishment="  done ").provided() == {"accomplishment": "done"}
    assert SequenceFragment(day_rating=None).provided() == {"day_rating": None}
