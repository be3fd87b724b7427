"""
Two-slot daily record store.

Holds exactly the "today" and "yesterday" records for one user session.
Habit actions update the in-memory record synchronously and then dispatch
a persistence task on the running event loop; callers never await it.
Persist failures do not roll anything back: they are logged and queued
as notices for the caller to surface.

Drain direction:
- today.deferred_from_morning   <- Startup defers, same day's Shutdown confirms
- today.deferred_from_evening   <- Shutdown defers, next day's Startup confirms
  (which reads it from *its* yesterday slot)
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional, Set

from dailyloop.core.config import settings
from dailyloop.core.errors import AppError, ConflictError, PersistenceError, SessionInitError, SubmitError
from dailyloop.core.logging import log_event
from dailyloop.features.localdate.service import LocalDays, resolve_local_days, utc_now
from dailyloop.features.records.repository import DayRecordRepository
from dailyloop.models.day_record import SLOT_FIELDS, DayRecord
from dailyloop.models.habit import HabitSlot


@dataclass(frozen=True)
class PersistNotice:
    """A non-blocking persistence failure waiting to be shown to the user."""

    operation: str
    habit_id: Optional[str]
    log_date: str
    message: str
    occurred_at: datetime

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "habit_id": self.habit_id,
            "log_date": self.log_date,
            "message": self.message,
            "occurred_at": self.occurred_at.isoformat(),
        }


class DailyRecordStore:
    def __init__(
        self,
        repository: DayRecordRepository,
        *,
        clock: Callable[[], datetime] = utc_now,
        notice_limit: Optional[int] = None,
    ):
        self._repository = repository
        self._clock = clock
        self._today: Optional[DayRecord] = None
        self._yesterday: Optional[DayRecord] = None
        self._days: Optional[LocalDays] = None
        self._user_id: Optional[str] = None
        self._tasks: Set[asyncio.Task] = set()
        self._locks: Dict[str, asyncio.Lock] = {}
        limit = notice_limit if notice_limit is not None else settings.PERSIST_NOTICE_LIMIT
        self._notices: Deque[PersistNotice] = deque(maxlen=max(1, limit))
        self.warnings: List[str] = []

    # Loading ----------------------------------------------------------
    async def load(self, user_id: str, timezone: Optional[str]) -> None:
        """Fetch (or default-construct) today's and yesterday's records.

        Replaces both slots wholesale; local edits made before a reload
        are not merged.
        """
        days = resolve_local_days(timezone, now=self._clock())
        try:
            today = await self._repository.get_day_record(user_id, days.today)
            yesterday = await self._repository.get_day_record(user_id, days.yesterday)
        except PersistenceError as exc:
            log_event(
                "error",
                "store.load_failed",
                request_id=None,
                user_id=user_id,
                log_date=days.today,
                error_code=exc.code,
                extra={"error": exc.message},
            )
            raise SessionInitError(f"Could not load daily logs: {exc.message}") from exc

        self._user_id = user_id
        self._days = days
        self._today = today or DayRecord(user_id=user_id, log_date=days.today)
        self._yesterday = yesterday or DayRecord(user_id=user_id, log_date=days.yesterday)
        self.warnings = [days.warning] if days.warning else []
        log_event(
            "info",
            "store.loaded",
            request_id=None,
            user_id=user_id,
            log_date=days.today,
            extra={
                "timezone": days.timezone,
                "yesterday": days.yesterday,
                "today_exists": today is not None,
                "yesterday_exists": yesterday is not None,
            },
        )

    @property
    def loaded(self) -> bool:
        return self._today is not None

    @property
    def timezone(self) -> Optional[str]:
        return self._days.timezone if self._days else None

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def get_today(self) -> DayRecord:
        return self._require(self._today)

    def get_yesterday(self) -> DayRecord:
        return self._require(self._yesterday)

    def owning_record(self, owning_slot: HabitSlot) -> DayRecord:
        """Morning deferrals live on today; evening deferrals on yesterday."""
        if owning_slot == HabitSlot.MORNING:
            return self.get_today()
        return self.get_yesterday()

    # Habit actions ----------------------------------------------------
    def mark_done(self, habit_id: str, slot: HabitSlot) -> None:
        today = self.get_today()
        today.completed_for(slot).add(habit_id)
        # Un-defer within the same slot, never yesterday's evening deferrals
        today.deferred_for(slot).discard(habit_id)
        touched = SLOT_FIELDS[slot]
        if slot == HabitSlot.EVENING_OR_ANYTIME:
            today.deferred_from_morning.discard(habit_id)
            touched += ("deferred_from_morning",)
        self._dispatch("mark_done", today, habit_id, touched)

    def mark_deferred(self, habit_id: str, slot: HabitSlot) -> None:
        today = self.get_today()
        today.completed_for(slot).discard(habit_id)
        today.deferred_for(slot).add(habit_id)
        self._dispatch("mark_deferred", today, habit_id, SLOT_FIELDS[slot])

    def clear_status(self, habit_id: str, slot: HabitSlot) -> None:
        """Did not do: neither completed nor pending."""
        today = self.get_today()
        today.completed_for(slot).discard(habit_id)
        today.deferred_for(slot).discard(habit_id)
        self._dispatch("clear_status", today, habit_id, SLOT_FIELDS[slot])

    def confirm_deferred(self, habit_id: str, owning_slot: HabitSlot, did_complete: bool) -> bool:
        """Resolve a pending deferral on its owning record.

        Returns False (and logs) when the habit was not pending there.
        """
        record = self.owning_record(owning_slot)
        deferred = record.deferred_for(owning_slot)
        if habit_id not in deferred:
            log_event(
                "warning",
                "store.confirm_not_deferred",
                request_id=None,
                user_id=record.user_id,
                log_date=record.log_date,
                extra={"habit_id": habit_id, "slot": owning_slot.value},
            )
            return False
        deferred.discard(habit_id)
        self._set_completed(record, owning_slot, habit_id, did_complete)
        self._dispatch("confirm_deferred", record, habit_id, SLOT_FIELDS[owning_slot])
        return True

    def revise_confirmation(self, habit_id: str, owning_slot: HabitSlot, did_complete: bool) -> None:
        """Change an answer already given for a confirmed deferral."""
        record = self.owning_record(owning_slot)
        if habit_id in record.deferred_for(owning_slot):
            self.confirm_deferred(habit_id, owning_slot, did_complete)
            return
        self._set_completed(record, owning_slot, habit_id, did_complete)
        self._dispatch("revise_confirmation", record, habit_id, SLOT_FIELDS[owning_slot])

    # Final submit -----------------------------------------------------
    async def persist_day(self, fields: dict) -> DayRecord:
        """Upsert today's record with ``fields`` and wait for the result.

        Unlike habit actions this is blocking for the caller: it is the only
        durability point for ratings and free text.
        """
        today = self.get_today()
        await self.drain()
        try:
            stored = await self._repository.upsert_day_record(today.user_id, today.log_date, fields)
        except AppError as exc:
            log_event(
                "error",
                "store.submit_failed",
                request_id=None,
                user_id=today.user_id,
                log_date=today.log_date,
                error_code=exc.code,
                extra={"error": exc.message},
            )
            raise SubmitError(f"Could not save your answers: {exc.message}") from exc
        today.apply(fields)
        if today.id is None:
            today.id = stored.id
        return stored

    # Background persistence -------------------------------------------
    def notices(self) -> List[PersistNotice]:
        return list(self._notices)

    def drain_notices(self) -> List[PersistNotice]:
        pending = list(self._notices)
        self._notices.clear()
        return pending

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight habit persist to settle."""
        while self._tasks:
            await asyncio.gather(*tuple(self._tasks), return_exceptions=True)

    def _dispatch(self, operation: str, record: DayRecord, habit_id: Optional[str], fields: tuple) -> None:
        task = asyncio.get_running_loop().create_task(self._persist(operation, record, habit_id, fields))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _persist(self, operation: str, record: DayRecord, habit_id: Optional[str], fields: tuple) -> None:
        """Write the habit sets named in ``fields`` and nothing else.

        A concurrent session for the same day owns the other slot's sets;
        writing only what this action touched keeps its changes intact.
        """
        lock = self._locks.setdefault(record.log_date, asyncio.Lock())
        async with lock:
            # Snapshot under the lock so the last writer always sends the newest sets
            sets = record.habit_sets(fields)
            try:
                if record.id is None:
                    stored = await self._repository.upsert_day_record(record.user_id, record.log_date, sets)
                    if record.id is None:
                        record.id = stored.id
                else:
                    await self._repository.update_deferred_sets(record.id, **sets)
            except Exception as exc:
                message = exc.message if isinstance(exc, AppError) else str(exc)
                self._notices.append(
                    PersistNotice(
                        operation=operation,
                        habit_id=habit_id,
                        log_date=record.log_date,
                        message=message,
                        occurred_at=self._clock(),
                    )
                )
                log_event(
                    "warning",
                    "store.persist_failed",
                    request_id=None,
                    user_id=record.user_id,
                    log_date=record.log_date,
                    error_code="persist_failed",
                    extra={"operation": operation, "habit_id": habit_id, "error": message},
                )

    # Helpers ----------------------------------------------------------
    @staticmethod
    def _set_completed(record: DayRecord, slot: HabitSlot, habit_id: str, did_complete: bool) -> None:
        completed = record.completed_for(slot)
        if did_complete:
            completed.add(habit_id)
        else:
            completed.discard(habit_id)

    @staticmethod
    def _require(record: Optional[DayRecord]) -> DayRecord:
        if record is None:
            raise ConflictError("Daily records are not loaded yet")
        return record
