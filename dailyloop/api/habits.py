"""Habit catalog and profile endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from dailyloop.core.auth import get_current_user_id
from dailyloop.core.logging import get_request_id
from dailyloop.features.catalog.service import HabitCatalog, habit_catalog
from dailyloop.models.habit import HabitTiming

router = APIRouter(tags=["habits"])


def get_habit_catalog() -> HabitCatalog:
    return habit_catalog


class CreateHabitRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    timing: HabitTiming


class UpdateHabitRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    timing: Optional[HabitTiming] = None


class HabitOrderRequest(BaseModel):
    ordered_ids: List[str]


class TimezoneRequest(BaseModel):
    timezone: str = Field(min_length=1, max_length=64)


@router.get("/v1/habits")
def list_habits(user_id: str = Depends(get_current_user_id), catalog: HabitCatalog = Depends(get_habit_catalog)):
    habits = catalog.list_habits(user_id)
    return {"data": [habit.model_dump(mode="json") for habit in habits], "request_id": get_request_id()}


@router.post("/v1/habits")
def create_habit(
    body: CreateHabitRequest,
    user_id: str = Depends(get_current_user_id),
    catalog: HabitCatalog = Depends(get_habit_catalog),
):
    habit = catalog.create_habit(user_id, body.name, body.timing)
    return {"data": habit.model_dump(mode="json"), "request_id": get_request_id()}


@router.patch("/v1/habits/{habit_id}")
def update_habit(
    habit_id: str,
    body: UpdateHabitRequest,
    user_id: str = Depends(get_current_user_id),
    catalog: HabitCatalog = Depends(get_habit_catalog),
):
    habit = catalog.update_habit(user_id, habit_id, name=body.name, timing=body.timing)
    return {"data": habit.model_dump(mode="json"), "request_id": get_request_id()}


@router.delete("/v1/habits/{habit_id}")
def delete_habit(
    habit_id: str,
    user_id: str = Depends(get_current_user_id),
    catalog: HabitCatalog = Depends(get_habit_catalog),
):
    catalog.delete_habit(user_id, habit_id)
    return {"success": True, "request_id": get_request_id()}


@router.put("/v1/habits/order")
def reorder_habits(
    body: HabitOrderRequest,
    user_id: str = Depends(get_current_user_id),
    catalog: HabitCatalog = Depends(get_habit_catalog),
):
    habits = catalog.reorder_habits(user_id, body.ordered_ids)
    return {"data": [habit.model_dump(mode="json") for habit in habits], "request_id": get_request_id()}


@router.get("/v1/profile/timezone")
def get_timezone(user_id: str = Depends(get_current_user_id), catalog: HabitCatalog = Depends(get_habit_catalog)):
    return {"timezone": catalog.get_user_timezone(user_id)}


@router.put("/v1/profile/timezone")
def set_timezone(
    body: TimezoneRequest,
    user_id: str = Depends(get_current_user_id),
    catalog: HabitCatalog = Depends(get_habit_catalog),
):
    return {"timezone": catalog.set_user_timezone(user_id, body.timezone)}
