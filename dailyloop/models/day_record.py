from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from dailyloop.models.habit import HabitSlot

RATING_FIELDS = ("prev_evening_rating", "sleep_rating", "morning_rating", "day_rating")
TEXT_FIELDS = ("feeling_morning", "accomplishment", "improvement")
HABIT_SET_FIELDS = (
    "completed_morning_habits",
    "completed_evening_or_anytime_habits",
    "deferred_from_morning",
    "deferred_from_evening",
)

# Habit sets each slot owns: (completed, deferred)
SLOT_FIELDS = {
    HabitSlot.MORNING: ("completed_morning_habits", "deferred_from_morning"),
    HabitSlot.EVENING_OR_ANYTIME: ("completed_evening_or_anytime_habits", "deferred_from_evening"),
}


@dataclass
class DayRecord:
    """
    One user's journal entry for one local day.

    ``deferred_from_morning`` is drained by the same day's Shutdown;
    ``deferred_from_evening`` is drained by the next day's Startup.
    """

    user_id: str
    log_date: str
    id: Optional[str] = None

    prev_evening_rating: Optional[int] = None
    sleep_rating: Optional[int] = None
    morning_rating: Optional[int] = None
    day_rating: Optional[int] = None

    feeling_morning: Optional[str] = None
    accomplishment: Optional[str] = None
    improvement: Optional[str] = None

    completed_morning_habits: set[str] = field(default_factory=set)
    completed_evening_or_anytime_habits: set[str] = field(default_factory=set)
    deferred_from_morning: set[str] = field(default_factory=set)
    deferred_from_evening: set[str] = field(default_factory=set)

    startup_completed_at: Optional[datetime] = None
    shutdown_completed_at: Optional[datetime] = None

    def completed_for(self, slot: HabitSlot) -> set[str]:
        if slot == HabitSlot.MORNING:
            return self.completed_morning_habits
        return self.completed_evening_or_anytime_habits

    def deferred_for(self, slot: HabitSlot) -> set[str]:
        if slot == HabitSlot.MORNING:
            return self.deferred_from_morning
        return self.deferred_from_evening

    def habit_sets(self, names=HABIT_SET_FIELDS) -> dict[str, set[str]]:
        return {name: set(getattr(self, name)) for name in names}

    def apply(self, fields: dict) -> None:
        """Overwrite the given fields; habit sets are copied."""
        for name, value in fields.items():
            if name in HABIT_SET_FIELDS:
                value = set(value or ())
            setattr(self, name, value)

    def to_dict(self) -> dict:
        payload = {
            "id": self.id,
            "user_id": self.user_id,
            "log_date": self.log_date,
        }
        for name in RATING_FIELDS + TEXT_FIELDS:
            payload[name] = getattr(self, name)
        for name in HABIT_SET_FIELDS:
            payload[name] = sorted(getattr(self, name))
        for name in ("startup_completed_at", "shutdown_completed_at"):
            value = getattr(self, name)
            payload[name] = value.isoformat() if value else None
        return payload
