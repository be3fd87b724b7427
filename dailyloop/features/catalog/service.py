"""
Habit catalog and profile timezone.

- list_habits(user_id): ordered by timing group then sort_order
- create/update/delete habits, reorder within the user's list
- get/set the user's timezone (defaults to DEFAULT_TIMEZONE)
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, insert, update, delete, func

from dailyloop.core.config import settings
from dailyloop.core.database import get_db_session, habits as habits_table, profiles
from dailyloop.core.errors import NotFoundError, ValidationError
from dailyloop.features.localdate.service import is_known_timezone
from dailyloop.models.habit import Habit, HabitTiming


def _row_to_habit(row) -> Habit:
    return Habit(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        timing=HabitTiming(row.timing),
        sort_order=row.sort_order,
        created_at=row.created_at,
    )


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Habit name must not be empty")
    if len(cleaned) > 200:
        raise ValidationError("Habit name must be at most 200 characters")
    return cleaned


class HabitCatalog:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def list_habits(self, user_id: str) -> List[Habit]:
        with get_db_session(self._session_factory) as session:
            rows = session.execute(
                select(habits_table).where(habits_table.c.user_id == user_id)
            ).all()
        return sorted((_row_to_habit(row) for row in rows), key=Habit.sort_key)

    def get_habit(self, user_id: str, habit_id: str) -> Habit:
        with get_db_session(self._session_factory) as session:
            row = session.execute(
                select(habits_table).where(
                    habits_table.c.id == habit_id,
                    habits_table.c.user_id == user_id,
                )
            ).first()
        if not row:
            raise NotFoundError(f"Habit {habit_id} not found")
        return _row_to_habit(row)

    def create_habit(self, user_id: str, name: str, timing: HabitTiming) -> Habit:
        cleaned = _clean_name(name)
        habit_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        with get_db_session(self._session_factory) as session:
            last = session.execute(
                select(func.max(habits_table.c.sort_order)).where(habits_table.c.user_id == user_id)
            ).scalar()
            session.execute(
                insert(habits_table).values(
                    id=habit_id,
                    user_id=user_id,
                    name=cleaned,
                    timing=timing.value,
                    sort_order=(last + 1) if last is not None else 0,
                    created_at=now,
                )
            )
        return self.get_habit(user_id, habit_id)

    def update_habit(self, user_id: str, habit_id: str, *, name: Optional[str] = None, timing: Optional[HabitTiming] = None) -> Habit:
        self.get_habit(user_id, habit_id)
        values = {}
        if name is not None:
            values["name"] = _clean_name(name)
        if timing is not None:
            values["timing"] = timing.value
        if values:
            with get_db_session(self._session_factory) as session:
                session.execute(
                    update(habits_table)
                    .where(habits_table.c.id == habit_id, habits_table.c.user_id == user_id)
                    .values(**values)
                )
        return self.get_habit(user_id, habit_id)

    def delete_habit(self, user_id: str, habit_id: str) -> None:
        with get_db_session(self._session_factory) as session:
            result = session.execute(
                delete(habits_table).where(
                    habits_table.c.id == habit_id,
                    habits_table.c.user_id == user_id,
                )
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Habit {habit_id} not found")

    def reorder_habits(self, user_id: str, ordered_ids: List[str]) -> List[Habit]:
        if not ordered_ids:
            return self.list_habits(user_id)
        if len(set(ordered_ids)) != len(ordered_ids):
            raise ValidationError("Habit order contains duplicates")
        owned = {habit.id for habit in self.list_habits(user_id)}
        unknown = [habit_id for habit_id in ordered_ids if habit_id not in owned]
        if unknown:
            raise NotFoundError(f"Unknown habits: {', '.join(unknown)}")
        with get_db_session(self._session_factory) as session:
            for position, habit_id in enumerate(ordered_ids):
                session.execute(
                    update(habits_table)
                    .where(habits_table.c.id == habit_id, habits_table.c.user_id == user_id)
                    .values(sort_order=position)
                )
        return self.list_habits(user_id)

    # Profile ----------------------------------------------------------
    def get_user_timezone(self, user_id: str) -> str:
        with get_db_session(self._session_factory) as session:
            value = session.execute(
                select(profiles.c.timezone).where(profiles.c.user_id == user_id)
            ).scalar()
        return value or settings.DEFAULT_TIMEZONE

    def set_user_timezone(self, user_id: str, timezone_name: str) -> str:
        if not is_known_timezone(timezone_name):
            raise ValidationError(f"Unknown timezone '{timezone_name}'")
        now = datetime.now(timezone.utc)
        with get_db_session(self._session_factory) as session:
            exists = session.execute(
                select(profiles.c.user_id).where(profiles.c.user_id == user_id)
            ).first()
            if exists:
                session.execute(
                    update(profiles)
                    .where(profiles.c.user_id == user_id)
                    .values(timezone=timezone_name, updated_at=now)
                )
            else:
                session.execute(
                    insert(profiles).values(user_id=user_id, timezone=timezone_name, updated_at=now)
                )
        return timezone_name


# Singleton catalog used by routes
habit_catalog = HabitCatalog()
