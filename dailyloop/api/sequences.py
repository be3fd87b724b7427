"""Sequence API endpoints.

Provides REST API for running the morning Startup and evening Shutdown
wizards: start a run, move forward/back, mark habits and confirm
deferred habits. Habit actions answer immediately; their persistence
finishes in the background and failures come back as ``notices``.
"""

from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel

from dailyloop.core.auth import get_current_user_id
from dailyloop.core.logging import get_request_id
from dailyloop.features.sequences.runner import RunStatus, SequenceRunner
from dailyloop.features.sequences.service import SequenceService, get_sequence_service
from dailyloop.models.sequence import HabitStatus, SequenceFragment, SequenceType

router = APIRouter(prefix="/v1/sequences", tags=["sequences"])


class HabitStatusRequest(BaseModel):
    status: Literal["done", "deferred", "not_done"]


class ConfirmationRequest(BaseModel):
    completed: bool


def _notices(runner: SequenceRunner) -> list:
    return [notice.to_dict() for notice in runner.store.drain_notices()]


def _run_response(runner: SequenceRunner) -> dict:
    return {
        "data": runner.view(),
        "notices": _notices(runner),
        "request_id": get_request_id(),
    }


def _finished_response(runner: SequenceRunner, service: SequenceService, user_id: str) -> dict:
    body = {
        "status": runner.status.value,
        "sequence": runner.sequence_type.value,
        "notices": _notices(runner),
        "request_id": get_request_id(),
    }
    if runner.status == RunStatus.SUBMITTED and runner.submitted_record:
        body["record"] = runner.submitted_record.to_dict()
    service.release(user_id, runner.sequence_type)
    return body


@router.post("/{sequence}/start")
async def start_sequence(
    sequence: SequenceType,
    user_id: str = Depends(get_current_user_id),
    service: SequenceService = Depends(get_sequence_service),
):
    """Load today's and yesterday's logs and plan the run."""
    runner = await service.start(user_id, sequence)
    return _run_response(runner)


@router.get("/{sequence}")
async def get_sequence(
    sequence: SequenceType,
    user_id: str = Depends(get_current_user_id),
    service: SequenceService = Depends(get_sequence_service),
):
    return _run_response(service.get(user_id, sequence))


@router.post("/{sequence}/next")
async def next_step(
    sequence: SequenceType,
    background_tasks: BackgroundTasks,
    fragment: Optional[SequenceFragment] = None,
    user_id: str = Depends(get_current_user_id),
    service: SequenceService = Depends(get_sequence_service),
):
    """Merge the step's answers and advance; the last step submits.

    A failed submit is returned as an error and the run stays on its last
    step so the user can retry.
    """
    runner = service.get(user_id, sequence)
    await runner.on_next(fragment)
    if runner.finished:
        return _finished_response(runner, service, user_id)
    background_tasks.add_task(runner.store.drain)
    return _run_response(runner)


@router.post("/{sequence}/back")
async def previous_step(
    sequence: SequenceType,
    user_id: str = Depends(get_current_user_id),
    service: SequenceService = Depends(get_sequence_service),
):
    """Step back; from the first step this leaves the run without saving answers."""
    runner = service.get(user_id, sequence)
    runner.on_back()
    if runner.finished:
        return _finished_response(runner, service, user_id)
    return _run_response(runner)


@router.post("/{sequence}/habits/{habit_id}")
async def set_habit_status(
    sequence: SequenceType,
    habit_id: str,
    body: HabitStatusRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    service: SequenceService = Depends(get_sequence_service),
):
    runner = service.get(user_id, sequence)
    runner.set_habit_status(habit_id, HabitStatus(body.status))
    background_tasks.add_task(runner.store.drain)
    return _run_response(runner)


@router.post("/{sequence}/confirmations/{habit_id}")
async def confirm_habit(
    sequence: SequenceType,
    habit_id: str,
    body: ConfirmationRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    service: SequenceService = Depends(get_sequence_service),
):
    runner = service.get(user_id, sequence)
    accepted = runner.confirm_habit(habit_id, body.completed)
    background_tasks.add_task(runner.store.drain)
    response = _run_response(runner)
    response["accepted"] = accepted
    return response
