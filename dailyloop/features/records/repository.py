"""
Day record persistence.

Async contract consumed by the daily record store, plus the SQLAlchemy
implementation. Blocking database work runs in a worker thread so the
event loop driving a sequence never waits on it.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from dailyloop.core.database import get_db_session, daily_logs
from dailyloop.core.errors import PersistenceError
from dailyloop.models.day_record import DayRecord, HABIT_SET_FIELDS, RATING_FIELDS, TEXT_FIELDS

# DayRecord attribute -> daily_logs column
COLUMN_FOR_FIELD = {
    **{name: name for name in RATING_FIELDS + TEXT_FIELDS},
    "completed_morning_habits": "completed_am_habits",
    "completed_evening_or_anytime_habits": "completed_pm_anytime_habits",
    "deferred_from_morning": "deferred_from_startup",
    "deferred_from_evening": "deferred_from_shutdown",
    "startup_completed_at": "startup_completed_at",
    "shutdown_completed_at": "shutdown_completed_at",
}


class DayRecordRepository(Protocol):
    async def get_day_record(self, user_id: str, log_date: str) -> Optional[DayRecord]:
        ...

    async def upsert_day_record(self, user_id: str, log_date: str, fields: dict) -> DayRecord:
        ...

    async def update_deferred_sets(
        self,
        record_id: str,
        deferred_from_morning: Optional[Iterable[str]] = None,
        deferred_from_evening: Optional[Iterable[str]] = None,
        *,
        completed_morning_habits: Optional[Iterable[str]] = None,
        completed_evening_or_anytime_habits: Optional[Iterable[str]] = None,
    ) -> None:
        ...


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; everything stored is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def row_to_record(row) -> DayRecord:
    record = DayRecord(user_id=row.user_id, log_date=row.log_date, id=row.id)
    for name, column in COLUMN_FOR_FIELD.items():
        value = getattr(row, column)
        if name in HABIT_SET_FIELDS:
            value = set(value or ())
        elif name.endswith("_completed_at"):
            value = _aware(value)
        setattr(record, name, value)
    return record


def fields_to_columns(fields: dict) -> dict:
    values = {}
    for name, value in fields.items():
        column = COLUMN_FOR_FIELD.get(name)
        if column is None:
            raise ValueError(f"Unknown day record field: {name}")
        if name in HABIT_SET_FIELDS:
            value = sorted(value or ())
        values[column] = value
    return values


class SqlDayRecordRepository:
    """daily_logs-backed repository; upsert is keyed by (user_id, log_date)."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    async def get_day_record(self, user_id: str, log_date: str) -> Optional[DayRecord]:
        return await asyncio.to_thread(self._get, user_id, log_date)

    async def upsert_day_record(self, user_id: str, log_date: str, fields: dict) -> DayRecord:
        return await asyncio.to_thread(self._upsert, user_id, log_date, fields)

    async def update_deferred_sets(
        self,
        record_id: str,
        deferred_from_morning: Optional[Iterable[str]] = None,
        deferred_from_evening: Optional[Iterable[str]] = None,
        *,
        completed_morning_habits: Optional[Iterable[str]] = None,
        completed_evening_or_anytime_habits: Optional[Iterable[str]] = None,
    ) -> None:
        # Sets left as None are not written
        candidates = {
            "deferred_from_morning": deferred_from_morning,
            "deferred_from_evening": deferred_from_evening,
            "completed_morning_habits": completed_morning_habits,
            "completed_evening_or_anytime_habits": completed_evening_or_anytime_habits,
        }
        fields = {name: value for name, value in candidates.items() if value is not None}
        if not fields:
            return
        await asyncio.to_thread(self._update_by_id, record_id, fields)

    # Blocking helpers -------------------------------------------------
    def _get(self, user_id: str, log_date: str) -> Optional[DayRecord]:
        try:
            with get_db_session(self._session_factory) as session:
                row = session.execute(
                    select(daily_logs).where(
                        daily_logs.c.user_id == user_id,
                        daily_logs.c.log_date == log_date,
                    )
                ).first()
                return row_to_record(row) if row else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to fetch daily log for {log_date}: {exc}") from exc

    def _upsert(self, user_id: str, log_date: str, fields: dict) -> DayRecord:
        values = fields_to_columns(fields)
        now = datetime.now(timezone.utc)
        try:
            try:
                self._insert_or_update(user_id, log_date, values, now)
            except IntegrityError:
                # Another writer created the row first; first write wins creation
                self._insert_or_update(user_id, log_date, values, now)
            stored = self._get(user_id, log_date)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to save daily log for {log_date}: {exc}") from exc
        if stored is None:
            raise PersistenceError(f"Daily log for {log_date} vanished after upsert")
        return stored

    def _insert_or_update(self, user_id: str, log_date: str, values: dict, now: datetime) -> None:
        with get_db_session(self._session_factory) as session:
            existing = session.execute(
                select(daily_logs.c.id).where(
                    daily_logs.c.user_id == user_id,
                    daily_logs.c.log_date == log_date,
                )
            ).first()
            if existing:
                if values:
                    session.execute(
                        update(daily_logs)
                        .where(daily_logs.c.id == existing.id)
                        .values(**values, updated_at=now)
                    )
                return
            session.execute(
                insert(daily_logs).values(
                    id=str(uuid.uuid4()),
                    user_id=user_id,
                    log_date=log_date,
                    created_at=now,
                    updated_at=now,
                    **{
                        "completed_am_habits": [],
                        "completed_pm_anytime_habits": [],
                        "deferred_from_startup": [],
                        "deferred_from_shutdown": [],
                        **values,
                    },
                )
            )

    def _update_by_id(self, record_id: str, fields: dict) -> None:
        values = fields_to_columns(fields)
        try:
            with get_db_session(self._session_factory) as session:
                result = session.execute(
                    update(daily_logs)
                    .where(daily_logs.c.id == record_id)
                    .values(**values, updated_at=datetime.now(timezone.utc))
                )
                if result.rowcount == 0:
                    raise PersistenceError(f"Daily log {record_id} not found")
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update deferred habits for log {record_id}: {exc}") from exc
