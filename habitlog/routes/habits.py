from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from habitlog.schemas import HabitCreate, HabitPatch, TogglePayload
from habitlog.session import get_habit_store
from habitlog.stores.habits import HabitStore

router = APIRouter()


@router.get("/v1/habits")
async def list_habits(category: str | None = Query(None), store: HabitStore = Depends(get_habit_store)):
    return {"items": [habit.to_dict() for habit in store.habits_by_category(category)]}


@router.post("/v1/habits")
async def create_habit(payload: HabitCreate, store: HabitStore = Depends(get_habit_store)):
    habit = await store.add_habit(payload.name, payload.category, payload.frequency)
    return habit.to_dict()


@router.patch("/v1/habits/{habit_id}")
async def update_habit(habit_id: str, payload: HabitPatch, store: HabitStore = Depends(get_habit_store)):
    habit = await store.update_habit(habit_id, **payload.model_dump(exclude_unset=True))
    return habit.to_dict()


@router.delete("/v1/habits/{habit_id}")
async def delete_habit(habit_id: str, store: HabitStore = Depends(get_habit_store)):
    await store.delete_habit(habit_id)
    return {"ok": True}


@router.post("/v1/habits/{habit_id}/toggle/{day}")
async def toggle_completion(
    habit_id: str,
    day: date,
    payload: TogglePayload | None = None,
    store: HabitStore = Depends(get_habit_store),
):
    duration = payload.duration_seconds if payload else None
    completion = await store.toggle_completion(habit_id, day, duration)
    return completion.to_dict()


@router.get("/v1/habits/completions")
async def list_completions(
    start: date = Query(...),
    end: date = Query(...),
    store: HabitStore = Depends(get_habit_store),
):
    return {"items": [c.to_dict() for c in store.completions_in_range(start, end)]}
