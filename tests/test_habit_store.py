from datetime import date

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import FlakyRemote
from habitlog.errors import NotFoundError, RemoteFailure, ValidationError
from habitlog.stores.habits import HabitStore, clean_habit_name

DAY = date(2024, 1, 1)


def test_clean_habit_name():
    assert clean_habit_name("  Drink   water ") == "Drink water"
    assert len(clean_habit_name("x" * 100)) == 60
    with pytest.raises(ValidationError) as info:
        clean_habit_name("   ")
    assert info.value.field == "name"


async def test_add_and_reload_habits(database, alice, bob):
    store = HabitStore(alice)
    habit = await store.add_habit("Read", "learning", "daily")
    assert habit.name == "Read"
    assert [h.id for h in store.habits] == [habit.id]

    reloaded = await HabitStore(alice).load()
    assert [h.name for h in reloaded.habits] == ["Read"]
    assert (await HabitStore(bob).load()).habits == []


async def test_add_habit_rejects_invalid_input(database, alice):
    store = HabitStore(alice)
    with pytest.raises(ValidationError):
        await store.add_habit("", "health", "daily")
    with pytest.raises(ValidationError):
        await store.add_habit("Run", "sports", "daily")
    with pytest.raises(ValidationError):
        await store.add_habit("Run", "health", "hourly")
    assert store.habits == []


async def test_toggle_sequence_tracks_duration(database, alice):
    store = HabitStore(alice)
    habit = await store.add_habit("Meditate", "health", "daily")

    first = await store.toggle_completion(habit.id, DAY, duration_seconds=120)
    assert (first.completed, first.duration_seconds) == (True, 120)
    assert store.is_completed(habit.id, DAY)

    second = await store.toggle_completion(habit.id, DAY)
    assert (second.completed, second.duration_seconds) == (False, None)
    assert not store.is_completed(habit.id, DAY)
    assert store.get_completion_duration(habit.id, DAY) is None

    third = await store.toggle_completion(habit.id, "2024-01-01", duration_seconds=60)
    assert (third.completed, third.duration_seconds) == (True, 60)

    reloaded = await HabitStore(alice).load()
    assert reloaded.is_completed(habit.id, DAY)
    assert reloaded.get_completion_duration(habit.id, DAY) == 60
    assert len(reloaded.completions) == 1


async def test_toggle_rejects_unknown_habit_and_negative_duration(database, alice):
    store = HabitStore(alice)
    habit = await store.add_habit("Walk", "fitness", "daily")
    with pytest.raises(NotFoundError):
        await store.toggle_completion("missing", DAY)
    with pytest.raises(ValidationError):
        await store.toggle_completion(habit.id, DAY, duration_seconds=-5)
    assert store.completions == []


async def test_update_habit(database, alice):
    store = HabitStore(alice)
    habit = await store.add_habit("Walk", "fitness", "daily")
    updated = await store.update_habit(habit.id, name="Long walk", frequency="weekly")
    assert (updated.name, updated.category, updated.frequency) == ("Long walk", "fitness", "weekly")
    assert store.get_habit(habit.id).name == "Long walk"
    with pytest.raises(NotFoundError):
        await store.update_habit("missing", name="x")


async def test_delete_habit_removes_its_completions(database, alice):
    store = HabitStore(alice)
    keep = await store.add_habit("Keep", "work", "daily")
    drop = await store.add_habit("Drop", "work", "daily")
    await store.toggle_completion(keep.id, DAY)
    await store.toggle_completion(drop.id, DAY)

    await store.delete_habit(drop.id)
    assert [h.id for h in store.habits] == [keep.id]
    assert [c.habit_id for c in store.completions] == [keep.id]

    reloaded = await HabitStore(alice).load()
    assert [c.habit_id for c in reloaded.completions] == [keep.id]
    with pytest.raises(NotFoundError):
        await store.delete_habit(drop.id)


async def test_failed_write_leaves_cache_unchanged(database, alice):
    store = HabitStore(alice)
    habit = await store.add_habit("Stretch", "health", "daily")
    store._remote = FlakyRemote(toggle_completion=SQLAlchemyError("down"))
    with pytest.raises(RemoteFailure):
        await store.toggle_completion(habit.id, DAY)
    assert not store.is_completed(habit.id, DAY)
    assert store.completions == []


async def test_listeners_hear_mutations(database, alice):
    store = HabitStore(alice)
    events = []
    unsubscribe = store.subscribe(lambda event, payload: events.append(event))
    habit = await store.add_habit("Journal", "personal", "daily")
    await store.toggle_completion(habit.id, DAY)
    unsubscribe()
    await store.delete_habit(habit.id)
    assert events == ["habit_added", "completion_toggled"]


async def test_store_without_identity_is_inert():
    store = HabitStore(None)
    assert await store.add_habit("Read", "learning", "daily") is None
    assert await store.toggle_completion("any", DAY) is None
    assert (await store.load()).habits == []


async def test_habits_by_category_and_range(database, alice):
    store = HabitStore(alice)
    work = await store.add_habit("Inbox zero", "work", "daily")
    await store.add_habit("Run", "fitness", "daily")
    await store.toggle_completion(work.id, date(2024, 1, 1))
    await store.toggle_completion(work.id, date(2024, 1, 5))
    assert [h.id for h in store.habits_by_category("work")] == [work.id]
    assert len(store.habits_by_category()) == 2
    in_range = store.completions_in_range("2024-01-02", "2024-01-31")
    assert [c.date for c in in_range] == [date(2024, 1, 5)]
