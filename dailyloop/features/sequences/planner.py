from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple

from dailyloop.features.records.store import DailyRecordStore
from dailyloop.models.habit import Habit
from dailyloop.models.sequence import (
    CONFIRM_STEP_FOR,
    SHUTDOWN_STEPS,
    STARTUP_STEPS,
    SequenceType,
    StepId,
)


@dataclass(frozen=True)
class SequencePlan:
    """
    Step order for one run, fixed when the run starts.

    ``pending_confirmations`` is the deferred set snapshot that justified
    the confirmation step; answering habits mid-run never changes it.
    """

    sequence_type: SequenceType
    steps: Tuple[StepId, ...]
    pending_confirmations: Tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def has_confirmation(self) -> bool:
        return CONFIRM_STEP_FOR[self.sequence_type] in self.steps


def pending_deferrals(sequence_type: SequenceType, store: DailyRecordStore) -> set[str]:
    """Deferred habits a run of ``sequence_type`` must confirm."""
    if sequence_type == SequenceType.STARTUP:
        return set(store.get_yesterday().deferred_from_evening)
    return set(store.get_today().deferred_from_morning)


def catalog_order(habit_ids: Iterable[str], habits: Sequence[Habit]) -> Tuple[str, ...]:
    """Order ids the way the catalog lists habits; ids no longer in it go last."""
    position = {habit.id: index for index, habit in enumerate(sorted(habits, key=Habit.sort_key))}
    return tuple(sorted(habit_ids, key=lambda habit_id: (position.get(habit_id, len(position)), habit_id)))


def plan(sequence_type: SequenceType, store: DailyRecordStore, habits: Sequence[Habit] = ()) -> SequencePlan:
    base = STARTUP_STEPS if sequence_type == SequenceType.STARTUP else SHUTDOWN_STEPS
    pending = catalog_order(pending_deferrals(sequence_type, store), habits)
    if not pending:
        # Nothing to confirm: the step is skipped rather than shown empty
        return SequencePlan(sequence_type=sequence_type, steps=tuple(base))
    return SequencePlan(
        sequence_type=sequence_type,
        steps=(CONFIRM_STEP_FOR[sequence_type],) + tuple(base),
        pending_confirmations=pending,
    )
