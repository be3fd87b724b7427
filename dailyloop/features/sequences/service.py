"""
Sequence session service.

Keeps at most one active run per (user, sequence type). Starting a run
resolves the user's timezone, loads today's and yesterday's records,
reads the habit catalog and freezes the step plan.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from dailyloop.core.config import settings
from dailyloop.core.errors import NotFoundError, SessionInitError
from dailyloop.core.logging import log_event
from dailyloop.features.catalog.service import HabitCatalog, habit_catalog
from dailyloop.features.localdate.service import utc_now
from dailyloop.features.records.repository import DayRecordRepository, SqlDayRecordRepository
from dailyloop.features.records.store import DailyRecordStore
from dailyloop.features.sequences.planner import plan
from dailyloop.features.sequences.reconciler import DeferralReconciler
from dailyloop.features.sequences.runner import SequenceRunner
from dailyloop.models.sequence import SequenceType

RunKey = Tuple[str, SequenceType]


class SequenceService:
    def __init__(
        self,
        repository: DayRecordRepository,
        catalog: HabitCatalog,
        *,
        clock: Callable[[], datetime] = utc_now,
        notice_limit: Optional[int] = None,
    ):
        self._repository = repository
        self._catalog = catalog
        self._clock = clock
        self._notice_limit = notice_limit if notice_limit is not None else settings.PERSIST_NOTICE_LIMIT
        self._runs: Dict[RunKey, SequenceRunner] = {}

    async def start(self, user_id: str, sequence_type: SequenceType) -> SequenceRunner:
        """Begin a fresh run, replacing any unfinished one for the same sequence."""
        try:
            timezone = await asyncio.to_thread(self._catalog.get_user_timezone, user_id)
            habits = await asyncio.to_thread(self._catalog.list_habits, user_id)
        except SQLAlchemyError as exc:
            raise SessionInitError(f"Could not load profile or habits: {exc}") from exc

        store = DailyRecordStore(self._repository, clock=self._clock, notice_limit=self._notice_limit)
        await store.load(user_id, timezone)
        run_plan = plan(sequence_type, store, habits)
        runner = SequenceRunner(
            plan=run_plan,
            store=store,
            reconciler=DeferralReconciler(store, habits, run_plan),
            clock=self._clock,
        )
        previous = self._runs.get((user_id, sequence_type))
        if previous is not None and not previous.finished:
            log_event(
                "info",
                "sequence.restarted",
                request_id=None,
                user_id=user_id,
                extra={"sequence": sequence_type.value, "abandoned_step": previous.current_step.value},
            )
        self._runs[(user_id, sequence_type)] = runner
        log_event(
            "info",
            "sequence.started",
            request_id=None,
            user_id=user_id,
            log_date=store.get_today().log_date,
            extra={
                "sequence": sequence_type.value,
                "steps": [step.value for step in run_plan.steps],
                "pending_confirmations": len(run_plan.pending_confirmations),
            },
        )
        return runner

    def get(self, user_id: str, sequence_type: SequenceType) -> SequenceRunner:
        runner = self._runs.get((user_id, sequence_type))
        if runner is None:
            raise NotFoundError(f"No active {sequence_type.value} run; start one first")
        return runner

    def release(self, user_id: str, sequence_type: SequenceType) -> None:
        """Forget a finished run."""
        runner = self._runs.get((user_id, sequence_type))
        if runner is not None and runner.finished:
            del self._runs[(user_id, sequence_type)]



_sequence_service: Optional[SequenceService] = None


def get_sequence_service() -> SequenceService:
    """Process-wide service used by routes (overridable in tests)."""
    global _sequence_service
    if _sequence_service is None:
        _sequence_service = SequenceService(SqlDayRecordRepository(), habit_catalog)
    return _sequence_service
