from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from habitlog import repositories
from habitlog.dates import parse_day
from habitlog.errors import NotFoundError, ValidationError
from habitlog.models import CATEGORIES, FREQUENCIES, Habit, HabitCompletion, Identity
from habitlog.sync import Observable, apply_remote

logger = logging.getLogger(__name__)

HABIT_NAME_MAX = 60


def clean_habit_name(name) -> str:
    clean = " ".join(str(name or "").split()).strip()[:HABIT_NAME_MAX]
    if not clean:
        raise ValidationError("Habit name cannot be empty", field="name")
    return clean


def _check_category(category) -> str:
    if category not in CATEGORIES:
        raise ValidationError(f"Unknown category: {category}", field="category")
    return category


def _check_frequency(frequency) -> str:
    if frequency not in FREQUENCIES:
        raise ValidationError(f"Unknown frequency: {frequency}", field="frequency")
    return frequency


class HabitStore(Observable):
    """Habits and completions of one user, mirrored from the database.

    Every mutation writes to the database first; the cache changes only
    once the write has succeeded.
    """

    def __init__(self, identity: Identity | None, remote=repositories):
        super().__init__()
        self.identity = identity
        self._remote = remote
        self._habits: List[Habit] = []
        self._completions: Dict[Tuple[str, date], HabitCompletion] = {}

    @property
    def user_id(self) -> str | None:
        return self.identity.user_id if self.identity else None

    @property
    def habits(self) -> List[Habit]:
        return list(self._habits)

    @property
    def completions(self) -> List[HabitCompletion]:
        return sorted(self._completions.values(), key=lambda c: (c.date, c.habit_id))

    def get_habit(self, habit_id: str) -> Optional[Habit]:
        for habit in self._habits:
            if habit.id == habit_id:
                return habit
        return None

    async def load(self) -> "HabitStore":
        if not self.user_id:
            return self
        habit_rows = await apply_remote(self._remote.list_habits(self.user_id), action="load habits")
        completion_rows = await apply_remote(self._remote.list_completions(self.user_id), action="load completions")
        self._habits = [Habit.from_row(row) for row in habit_rows]
        completions = [HabitCompletion.from_row(row) for row in completion_rows]
        self._completions = {(c.habit_id, c.date): c for c in completions}
        self._notify("loaded")
        return self

    async def add_habit(self, name: str, category: str, frequency: str) -> Optional[Habit]:
        clean_name = clean_habit_name(name)
        _check_category(category)
        _check_frequency(frequency)
        if not self.user_id:
            return None
        record = {
            "id": repositories.new_id(),
            "user_id": self.user_id,
            "name": clean_name,
            "category": category,
            "frequency": frequency,
            "created_at": repositories.now_iso(),
        }

        def _apply(row):
            habit = Habit.from_row(row)
            self._habits.append(habit)
            self._notify("habit_added", habit)
            return habit

        habit = await apply_remote(self._remote.insert_habit(record), _apply, action="add habit")
        logger.info("Habit %s created for %s", habit.id, self.user_id)
        return habit

    async def update_habit(
        self,
        habit_id: str,
        name: str | None = None,
        category: str | None = None,
        frequency: str | None = None,
    ) -> Optional[Habit]:
        if not self.user_id:
            return None
        if self.get_habit(habit_id) is None:
            raise NotFoundError(f"Habit {habit_id} not found", field="id")
        patch = {}
        if name is not None:
            patch["name"] = clean_habit_name(name)
        if category is not None:
            patch["category"] = _check_category(category)
        if frequency is not None:
            patch["frequency"] = _check_frequency(frequency)

        def _apply(row):
            if row is None:
                raise NotFoundError(f"Habit {habit_id} not found", field="id")
            updated = Habit.from_row(row)
            self._habits = [updated if h.id == habit_id else h for h in self._habits]
            self._notify("habit_updated", updated)
            return updated

        return await apply_remote(
            self._remote.update_habit(self.user_id, habit_id, patch), _apply, action="update habit"
        )

    async def delete_habit(self, habit_id: str) -> None:
        if not self.user_id:
            return None
        if self.get_habit(habit_id) is None:
            raise NotFoundError(f"Habit {habit_id} not found", field="id")

        def _apply(deleted):
            if not deleted:
                raise NotFoundError(f"Habit {habit_id} not found", field="id")
            # Build both collections first and swap together so readers never
            # see the habit gone while its completions remain.
            habits = [h for h in self._habits if h.id != habit_id]
            completions = {key: c for key, c in self._completions.items() if c.habit_id != habit_id}
            self._habits, self._completions = habits, completions
            self._notify("habit_deleted", habit_id)

        await apply_remote(self._remote.delete_habit(self.user_id, habit_id), _apply, action="delete habit")
        logger.info("Habit %s deleted for %s", habit_id, self.user_id)

    async def toggle_completion(self, habit_id: str, day, duration_seconds: int | None = None) -> Optional[HabitCompletion]:
        """Flip completion of ``habit_id`` on ``day``.

        Calling twice flips twice; callers guard against double submission.
        """
        if not self.user_id:
            return None
        day = parse_day(day)
        if self.get_habit(habit_id) is None:
            raise NotFoundError(f"Habit {habit_id} not found", field="habit_id")
        if duration_seconds is not None:
            duration_seconds = int(duration_seconds)
            if duration_seconds < 0:
                raise ValidationError("Duration cannot be negative", field="duration_seconds")

        def _apply(row):
            completion = HabitCompletion.from_row(row)
            self._completions[(completion.habit_id, completion.date)] = completion
            self._notify("completion_toggled", completion)
            return completion

        return await apply_remote(
            self._remote.toggle_completion(self.user_id, habit_id, day.isoformat(), duration_seconds),
            _apply,
            action="toggle completion",
        )

    def is_completed(self, habit_id: str, day) -> bool:
        completion = self._completions.get((habit_id, parse_day(day)))
        return bool(completion and completion.completed)

    def get_completion_duration(self, habit_id: str, day) -> Optional[int]:
        completion = self._completions.get((habit_id, parse_day(day)))
        if completion is None:
            return None
        return completion.duration_seconds

    def habits_by_category(self, category: str | None = None) -> List[Habit]:
        if not category:
            return self.habits
        return [h for h in self._habits if h.category == category]

    def completions_in_range(self, start, end) -> List[HabitCompletion]:
        start, end = parse_day(start), parse_day(end)
        return [c for c in self.completions if start <= c.date <= end]
