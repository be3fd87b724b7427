"""
Deferral reconciliation rules for one sequence run.

- Habit actions only touch habits eligible for the run's slot
  (Anytime habits are eligible in both slots).
- "Done" after "Do Later" drops the deferral in the same local update.
- A confirmation step lists the deferrals snapshotted at plan time and
  must have every one answered before the run can move on.
- Yes/No always drains the deferral; Yes records the completion on the
  owning record (the one that deferred it), No leaves it missed.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from dailyloop.core.errors import NotFoundError, ValidationError
from dailyloop.core.logging import log_event
from dailyloop.features.records.store import DailyRecordStore
from dailyloop.features.sequences.planner import SequencePlan
from dailyloop.models.habit import Habit, HabitSlot
from dailyloop.models.sequence import CONFIRMS_SLOT, SEQUENCE_SLOT, HabitStatus


class DeferralReconciler:
    def __init__(self, store: DailyRecordStore, habits: Sequence[Habit], plan: SequencePlan):
        self._store = store
        self._plan = plan
        self._habits: Dict[str, Habit] = {habit.id: habit for habit in habits}
        self._answers: Dict[str, bool] = {}

    @property
    def slot(self) -> HabitSlot:
        return SEQUENCE_SLOT[self._plan.sequence_type]

    @property
    def owning_slot(self) -> HabitSlot:
        return CONFIRMS_SLOT[self._plan.sequence_type]

    # Habit step -------------------------------------------------------
    def eligible_habits(self) -> List[Habit]:
        return sorted(
            (habit for habit in self._habits.values() if habit.eligible_for(self.slot)),
            key=Habit.sort_key,
        )

    def status_of(self, habit_id: str) -> Optional[HabitStatus]:
        today = self._store.get_today()
        if habit_id in today.completed_for(self.slot):
            return HabitStatus.DONE
        if habit_id in today.deferred_for(self.slot):
            return HabitStatus.DEFERRED
        return None

    def habit_items(self) -> List[dict]:
        return [
            {
                "habit_id": habit.id,
                "name": habit.name,
                "timing": habit.timing.value,
                "status": (self.status_of(habit.id) or HabitStatus.NOT_DONE).value,
            }
            for habit in self.eligible_habits()
        ]

    def set_status(self, habit_id: str, status: HabitStatus) -> None:
        habit = self._habits.get(habit_id)
        if habit is None:
            raise NotFoundError(f"Habit {habit_id} not found")
        if not habit.eligible_for(self.slot):
            raise ValidationError(
                f"Habit '{habit.name}' ({habit.timing.value}) cannot be marked during {self._plan.sequence_type.value}"
            )
        if status == HabitStatus.DONE:
            self._store.mark_done(habit_id, self.slot)
        elif status == HabitStatus.DEFERRED:
            self._store.mark_deferred(habit_id, self.slot)
        else:
            self._store.clear_status(habit_id, self.slot)

    # Confirmation step ------------------------------------------------
    def confirmation_items(self) -> List[dict]:
        items = []
        for habit_id in self._plan.pending_confirmations:
            habit = self._habits.get(habit_id)
            items.append(
                {
                    "habit_id": habit_id,
                    "name": habit.name if habit else None,
                    "completed": self._answers.get(habit_id),
                }
            )
        return items

    def confirm(self, habit_id: str, did_complete: bool) -> bool:
        """Record a Yes/No answer; returns False for habits not listed."""
        if habit_id not in self._plan.pending_confirmations:
            log_event(
                "warning",
                "reconciler.confirm_unlisted",
                request_id=None,
                user_id=self._store.user_id,
                extra={"habit_id": habit_id, "sequence": self._plan.sequence_type.value},
            )
            return False
        previous = self._answers.get(habit_id)
        if previous is None:
            applied = self._store.confirm_deferred(habit_id, self.owning_slot, did_complete)
            if not applied:
                # Drained elsewhere (second tab, reload); still record the answer
                self._store.revise_confirmation(habit_id, self.owning_slot, did_complete)
        elif previous != did_complete:
            self._store.revise_confirmation(habit_id, self.owning_slot, did_complete)
        self._answers[habit_id] = did_complete
        return True

    def unanswered(self) -> List[str]:
        return [habit_id for habit_id in self._plan.pending_confirmations if habit_id not in self._answers]

    def all_confirmed(self) -> bool:
        return not self.unanswered()
