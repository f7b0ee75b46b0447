from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional

from habitlog import repositories
from habitlog.dates import parse_day, trailing_days
from habitlog.errors import ValidationError
from habitlog.models import MOOD_MAX, MOOD_MIN, MOOD_TAGS, Identity, MoodEntry
from habitlog.sync import Observable, apply_remote

logger = logging.getLogger(__name__)


def _clean_tags(tags) -> List[str]:
    clean: List[str] = []
    for tag in tags or []:
        tag = str(tag).strip().lower()
        if tag not in MOOD_TAGS:
            raise ValidationError(f"Unknown mood tag: {tag}", field="tags")
        if tag not in clean:
            clean.append(tag)
    return clean


def _check_mood(mood) -> int:
    if isinstance(mood, bool) or not isinstance(mood, int):
        raise ValidationError("Mood must be an integer", field="mood")
    if not MOOD_MIN <= mood <= MOOD_MAX:
        raise ValidationError(f"Mood must be between {MOOD_MIN} and {MOOD_MAX}", field="mood")
    return mood


class MoodStore(Observable):
    def __init__(self, identity: Identity | None, remote=repositories, today: Callable[[], date] = date.today):
        super().__init__()
        self.identity = identity
        self._remote = remote
        self._today = today
        self._entries: Dict[date, MoodEntry] = {}

    @property
    def user_id(self) -> str | None:
        return self.identity.user_id if self.identity else None

    @property
    def entries(self) -> List[MoodEntry]:
        return [self._entries[key] for key in sorted(self._entries)]

    async def load(self) -> "MoodStore":
        if not self.user_id:
            return self
        rows = await apply_remote(self._remote.list_mood_entries(self.user_id), action="load mood entries")
        entries = [MoodEntry.from_row(row) for row in rows]
        self._entries = {entry.date: entry for entry in entries}
        self._notify("loaded")
        return self

    async def set_mood(self, day, mood: int, notes: str | None = None, tags=None) -> Optional[MoodEntry]:
        day = parse_day(day)
        mood = _check_mood(mood)
        clean_tags = _clean_tags(tags)
        notes = notes.strip() if isinstance(notes, str) and notes.strip() else None
        if not self.user_id:
            return None

        def _apply(row):
            entry = MoodEntry.from_row(row)
            self._entries[entry.date] = entry
            self._notify("mood_saved", entry)
            return entry

        entry = await apply_remote(
            self._remote.upsert_mood_entry(self.user_id, day.isoformat(), mood, notes, clean_tags),
            _apply,
            action="save mood",
        )
        logger.info("Mood saved for %s on %s", self.user_id, day.isoformat())
        return entry

    def get_mood_for_date(self, day) -> Optional[MoodEntry]:
        return self._entries.get(parse_day(day))

    def get_today_mood(self) -> Optional[MoodEntry]:
        return self.get_mood_for_date(self._today())

    def get_average_mood(self, window_days: int = 7) -> Optional[float]:
        cutoff = self._today() - timedelta(days=window_days)
        recent = [entry.mood for entry in self._entries.values() if entry.date >= cutoff]
        if not recent:
            return None
        return round(sum(recent) / len(recent), 1)

    def get_mood_series(self, days: int = 7) -> List[dict]:
        series = []
        for day in trailing_days(days, self._today()):
            entry = self._entries.get(day)
            series.append({"date": day.isoformat(), "mood": entry.mood if entry else None})
        return series
