from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from dailyloop.core.errors import ConflictError, SubmitError, UnconfirmedHabitsError, ValidationError
from dailyloop.core.logging import log_event
from dailyloop.features.localdate.service import local_date_string, utc_now
from dailyloop.features.records.store import DailyRecordStore
from dailyloop.features.sequences.planner import SequencePlan
from dailyloop.features.sequences.reconciler import DeferralReconciler
from dailyloop.models.day_record import SLOT_FIELDS, DayRecord
from dailyloop.models.sequence import (
    CONFIRM_STEPS,
    HABIT_STEPS,
    SEQUENCE_FIELDS,
    SEQUENCE_SLOT,
    HabitStatus,
    SequenceFragment,
    SequenceType,
    StepId,
)


class RunStatus(str, Enum):
    ACTIVE = "active"
    SUBMIT_FAILED = "submit_failed"
    SUBMITTED = "submitted"
    EXITED = "exited"


class SequenceRunner:
    """Wizard state machine for one Startup or Shutdown run.

    Answers merged by ``on_next`` survive back/forward navigation and are
    only written by ``submit``; habit actions are persisted by the store as
    they happen.
    """

    def __init__(
        self,
        *,
        plan: SequencePlan,
        store: DailyRecordStore,
        reconciler: DeferralReconciler,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.plan = plan
        self.store = store
        self.reconciler = reconciler
        self._clock = clock
        self.index = 0
        self.collected: dict = {}
        self.status = RunStatus.ACTIVE
        self.submit_error: Optional[str] = None
        self.submitted_record: Optional[DayRecord] = None

    @property
    def sequence_type(self) -> SequenceType:
        return self.plan.sequence_type

    @property
    def current_step(self) -> StepId:
        return self.plan.steps[self.index]

    @property
    def is_last_step(self) -> bool:
        return self.index == len(self.plan) - 1

    @property
    def finished(self) -> bool:
        return self.status in (RunStatus.SUBMITTED, RunStatus.EXITED)

    # Navigation -------------------------------------------------------
    async def on_next(self, fragment: Optional[SequenceFragment] = None) -> RunStatus:
        self._require_open()
        provided = fragment.provided() if fragment else {}
        foreign = set(provided) - SEQUENCE_FIELDS[self.sequence_type]
        if foreign:
            raise ValidationError(
                f"Fields not collected by {self.sequence_type.value}: {', '.join(sorted(foreign))}"
            )
        if self.current_step in CONFIRM_STEPS and not self.reconciler.all_confirmed():
            raise UnconfirmedHabitsError(self.reconciler.unanswered())

        self.collected.update(provided)
        if not self.is_last_step:
            self.index += 1
            return self.status

        await self.submit()
        return self.status

    def on_back(self) -> RunStatus:
        self._require_open()
        if self.index == 0:
            self.status = RunStatus.EXITED
            return self.status
        self.index -= 1
        return self.status

    # Habit actions ----------------------------------------------------
    def set_habit_status(self, habit_id: str, status: HabitStatus) -> None:
        self._require_open()
        if self.current_step not in HABIT_STEPS:
            raise ConflictError(f"Habits can only be marked on the habits step, not '{self.current_step.value}'")
        self.reconciler.set_status(habit_id, status)

    def confirm_habit(self, habit_id: str, did_complete: bool) -> bool:
        self._require_open()
        if self.current_step not in CONFIRM_STEPS:
            raise ConflictError(f"No confirmation step is being shown (current step '{self.current_step.value}')")
        return self.reconciler.confirm(habit_id, did_complete)

    # Submission -------------------------------------------------------
    def build_payload(self, completed_at: datetime) -> dict:
        today = self.store.get_today()
        payload = {name: self.collected.get(name) for name in sorted(SEQUENCE_FIELDS[self.sequence_type])}
        # Only the sets this sequence owns; the other slot may belong to an open run
        payload.update(today.habit_sets(SLOT_FIELDS[SEQUENCE_SLOT[self.sequence_type]]))
        stamp = "startup_completed_at" if self.sequence_type == SequenceType.STARTUP else "shutdown_completed_at"
        payload[stamp] = completed_at
        return payload

    async def submit(self) -> DayRecord:
        self._require_open()
        now = self._clock()
        today = self.store.get_today()
        submit_date = local_date_string(self.store.timezone, now=now)
        if submit_date != today.log_date:
            # Run straddled local midnight; answers stay with the day it started on
            log_event(
                "warning",
                "sequence.crossed_midnight",
                request_id=None,
                user_id=today.user_id,
                log_date=today.log_date,
                extra={"submit_date": submit_date, "sequence": self.sequence_type.value},
            )
        try:
            record = await self.store.persist_day(self.build_payload(now))
        except SubmitError as exc:
            self.status = RunStatus.SUBMIT_FAILED
            self.submit_error = exc.message
            raise
        self.status = RunStatus.SUBMITTED
        self.submit_error = None
        self.submitted_record = record
        log_event(
            "info",
            "sequence.submitted",
            request_id=None,
            user_id=record.user_id,
            log_date=record.log_date,
            extra={"sequence": self.sequence_type.value, "steps": len(self.plan)},
        )
        return record

    # Views ------------------------------------------------------------
    def view(self) -> dict:
        step = self.current_step
        payload = {
            "sequence": self.sequence_type.value,
            "status": self.status.value,
            "local_date": self.store.get_today().log_date,
            "timezone": self.store.timezone,
            "steps": [s.value for s in self.plan.steps],
            "step": step.value,
            "step_index": self.index,
            "step_count": len(self.plan),
            "collected": dict(self.collected),
            "warnings": list(self.store.warnings),
        }
        if step in HABIT_STEPS:
            payload["habits"] = self.reconciler.habit_items()
        if step in CONFIRM_STEPS:
            payload["confirmations"] = self.reconciler.confirmation_items()
            payload["can_advance"] = self.reconciler.all_confirmed()
        if self.submit_error:
            payload["submit_error"] = self.submit_error
        return payload

    def _require_open(self) -> None:
        if self.finished:
            raise ConflictError(f"This {self.sequence_type.value} run has already {self.status.value}")
