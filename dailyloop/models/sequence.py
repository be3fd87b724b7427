"""
Sequence models: step identifiers, habit statuses and the per-step
fragments collected while a Startup or Shutdown run is in progress.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dailyloop.models.habit import HabitSlot


class SequenceType(str, Enum):
    STARTUP = "startup"
    SHUTDOWN = "shutdown"


class StepId(str, Enum):
    # Startup
    CONFIRM_DEFERRED_EVENING = "confirm-deferred-evening"
    PREV_EVENING_RATING = "prev-evening-rating"
    SLEEP_RATING = "sleep-rating"
    MORNING_RATING = "morning-rating"
    FEELING = "feeling"
    MORNING_HABITS = "am-habits"
    # Shutdown
    CONFIRM_DEFERRED_MORNING = "confirm-deferred-morning"
    DAY_RATING = "day-rating"
    ACCOMPLISHMENT = "accomplishment"
    IMPROVEMENT = "improvement"
    EVENING_HABITS = "pm-anytime-habits"


class HabitStatus(str, Enum):
    DONE = "done"
    DEFERRED = "deferred"
    NOT_DONE = "not_done"


STARTUP_STEPS = (
    StepId.PREV_EVENING_RATING,
    StepId.SLEEP_RATING,
    StepId.MORNING_RATING,
    StepId.FEELING,
    StepId.MORNING_HABITS,
)

SHUTDOWN_STEPS = (
    StepId.DAY_RATING,
    StepId.ACCOMPLISHMENT,
    StepId.IMPROVEMENT,
    StepId.EVENING_HABITS,
)

CONFIRM_STEP_FOR = {
    SequenceType.STARTUP: StepId.CONFIRM_DEFERRED_EVENING,
    SequenceType.SHUTDOWN: StepId.CONFIRM_DEFERRED_MORNING,
}
CONFIRM_STEPS = frozenset(CONFIRM_STEP_FOR.values())
HABIT_STEPS = frozenset({StepId.MORNING_HABITS, StepId.EVENING_HABITS})

# Slot whose habits a sequence's habit step marks
SEQUENCE_SLOT = {
    SequenceType.STARTUP: HabitSlot.MORNING,
    SequenceType.SHUTDOWN: HabitSlot.EVENING_OR_ANYTIME,
}

# Slot that owns the deferrals a sequence's confirmation step drains
CONFIRMS_SLOT = {
    SequenceType.STARTUP: HabitSlot.EVENING_OR_ANYTIME,
    SequenceType.SHUTDOWN: HabitSlot.MORNING,
}

SEQUENCE_FIELDS = {
    SequenceType.STARTUP: frozenset({"prev_evening_rating", "sleep_rating", "morning_rating", "feeling_morning"}),
    SequenceType.SHUTDOWN: frozenset({"day_rating", "accomplishment", "improvement"}),
}


class SequenceFragment(BaseModel):
    """Partial answers submitted by a single step."""

    model_config = ConfigDict(extra="forbid")

    prev_evening_rating: Optional[int] = Field(default=None, ge=1, le=5)
    sleep_rating: Optional[int] = Field(default=None, ge=1, le=5)
    morning_rating: Optional[int] = Field(default=None, ge=1, le=5)
    day_rating: Optional[int] = Field(default=None, ge=1, le=5)
    feeling_morning: Optional[str] = Field(default=None, max_length=4000)
    accomplishment: Optional[str] = Field(default=None, max_length=4000)
    improvement: Optional[str] = Field(default=None, max_length=4000)

    @field_validator("feeling_morning", "accomplishment", "improvement")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if isinstance(value, str) else value

    def provided(self) -> dict:
        """Fields the step actually sent, explicit nulls included."""
        return self.model_dump(exclude_unset=True)
