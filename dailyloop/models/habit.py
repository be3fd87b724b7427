from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HabitTiming(str, Enum):
    """When in the day a habit is expected to happen."""

    MORNING = "AM"
    EVENING = "PM"
    ANYTIME = "ANYTIME"


class HabitSlot(str, Enum):
    """Which habit step a completion belongs to: Startup's or Shutdown's."""

    MORNING = "morning"
    EVENING_OR_ANYTIME = "evening_or_anytime"


# Catalog display order: morning first, then anytime, then evening
TIMING_ORDER = {
    HabitTiming.MORNING: 0,
    HabitTiming.ANYTIME: 1,
    HabitTiming.EVENING: 2,
}

# Anytime habits belong to both slots; affinity is evaluated per sequence
SLOT_TIMINGS = {
    HabitSlot.MORNING: frozenset({HabitTiming.MORNING, HabitTiming.ANYTIME}),
    HabitSlot.EVENING_OR_ANYTIME: frozenset({HabitTiming.EVENING, HabitTiming.ANYTIME}),
}


class Habit(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    name: str = Field(min_length=1, max_length=200)
    timing: HabitTiming
    sort_order: Optional[int] = None
    created_at: Optional[datetime] = None

    def eligible_for(self, slot: HabitSlot) -> bool:
        return self.timing in SLOT_TIMINGS[slot]

    def sort_key(self):
        order = self.sort_order if self.sort_order is not None else float("inf")
        return (TIMING_ORDER[self.timing], order, self.name.lower())
