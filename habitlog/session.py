from __future__ import annotations

from datetime import date

from fastapi import Depends

from habitlog.auth import require_identity
from habitlog.models import Identity
from habitlog.progress import ProgressAggregator
from habitlog.services.notifications import NotificationRegistrar
from habitlog.stores.habits import HabitStore
from habitlog.stores.messaging import MessagingCoordinator
from habitlog.stores.moods import MoodStore


def get_today() -> date:
    return date.today()


async def get_habit_store(identity: Identity = Depends(require_identity)) -> HabitStore:
    return await HabitStore(identity).load()


async def get_mood_store(
    identity: Identity = Depends(require_identity),
    today: date = Depends(get_today),
) -> MoodStore:
    return await MoodStore(identity, today=lambda: today).load()


async def get_aggregator(
    habit_store: HabitStore = Depends(get_habit_store),
    mood_store: MoodStore = Depends(get_mood_store),
    today: date = Depends(get_today),
) -> ProgressAggregator:
    return ProgressAggregator(habit_store, mood_store, today=lambda: today)


async def get_messaging(identity: Identity = Depends(require_identity)) -> MessagingCoordinator:
    return MessagingCoordinator(identity)


async def get_registrar(identity: Identity = Depends(require_identity)) -> NotificationRegistrar:
    return NotificationRegistrar(identity)
