from datetime import date

import pytest

from habitlog.errors import ValidationError
from habitlog.stores.moods import MoodStore


def _store(identity, today=date(2024, 1, 10)):
    return MoodStore(identity, today=lambda: today)


async def test_set_and_reload_mood(database, alice):
    store = _store(alice)
    entry = await store.set_mood("2024-01-01", 7, "  ok  ", ["Happy", "happy"])
    assert (entry.mood, entry.notes, entry.tags) == (7, "ok", ["happy"])

    reloaded = await _store(alice).load()
    saved = reloaded.get_mood_for_date(date(2024, 1, 1))
    assert (saved.mood, saved.notes, saved.tags) == (7, "ok", ["happy"])


async def test_one_entry_per_day(database, alice):
    store = _store(alice)
    await store.set_mood("2024-01-01", 3)
    await store.set_mood("2024-01-01", 9, tags=["calm"])
    assert len(store.entries) == 1
    reloaded = await _store(alice).load()
    assert [(e.mood, e.tags) for e in reloaded.entries] == [(9, ["calm"])]


@pytest.mark.parametrize("mood", [0, 11, 5.5, True])
async def test_mood_out_of_range(database, alice, mood):
    store = _store(alice)
    with pytest.raises(ValidationError) as info:
        await store.set_mood("2024-01-01", mood)
    assert info.value.field == "mood"
    assert store.entries == []


async def test_unknown_tag_rejected(database, alice):
    with pytest.raises(ValidationError) as info:
        await _store(alice).set_mood("2024-01-01", 5, tags=["bored"])
    assert info.value.field == "tags"


async def test_malformed_date_rejected(database, alice):
    store = _store(alice)
    with pytest.raises(ValidationError) as info:
        await store.set_mood("2024-13-40", 5)
    assert info.value.field == "date"
    assert store.entries == []


async def test_average_mood_window(database, alice):
    store = _store(alice)
    assert store.get_average_mood() is None
    await store.set_mood("2024-01-09", 8)
    await store.set_mood("2024-01-05", 6)
    await store.set_mood("2023-12-20", 1)
    assert store.get_average_mood() == 7.0
    assert store.get_average_mood(window_days=30) == 5.0


async def test_today_mood_and_series(database, alice):
    store = _store(alice)
    assert store.get_today_mood() is None
    await store.set_mood("2024-01-10", 6)
    await store.set_mood("2024-01-08", 4)
    assert store.get_today_mood().mood == 6
    series = store.get_mood_series(3)
    assert series == [
        {"date": "2024-01-08", "mood": 4},
        {"date": "2024-01-09", "mood": None},
        {"date": "2024-01-10", "mood": 6},
    ]


async def test_moods_are_per_user(database, alice, bob):
    await _store(alice).set_mood("2024-01-01", 7)
    assert (await _store(bob).load()).entries == []
