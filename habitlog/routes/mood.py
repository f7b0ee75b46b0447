from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from habitlog.schemas import MoodPayload
from habitlog.session import get_mood_store
from habitlog.stores.moods import MoodStore

router = APIRouter()


@router.get("/v1/mood/today")
async def today_mood(store: MoodStore = Depends(get_mood_store)):
    entry = store.get_today_mood()
    return {"entry": entry.to_dict() if entry else None}


@router.get("/v1/mood/average")
async def average_mood(days: int = Query(7, ge=1, le=366), store: MoodStore = Depends(get_mood_store)):
    return {"days": days, "average": store.get_average_mood(days)}


@router.get("/v1/mood/series")
async def mood_series(days: int = Query(7, ge=1, le=366), store: MoodStore = Depends(get_mood_store)):
    return {"items": store.get_mood_series(days)}


@router.get("/v1/mood/{day}")
async def get_mood(day: date, store: MoodStore = Depends(get_mood_store)):
    entry = store.get_mood_for_date(day)
    return {"date": day.isoformat(), "entry": entry.to_dict() if entry else None}


@router.put("/v1/mood/{day}")
async def set_mood(day: date, payload: MoodPayload, store: MoodStore = Depends(get_mood_store)):
    entry = await store.set_mood(day, payload.mood, payload.notes, payload.tags)
    return entry.to_dict()
