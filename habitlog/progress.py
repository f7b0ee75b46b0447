from __future__ import annotations

from datetime import date, timedelta
from typing import Callable, Iterable, List, Optional

from habitlog.dates import month_days, parse_day, trailing_days, week_days, week_start
from habitlog.models import DailyProgress, Habit, MoodEntry

CompletionLookup = Callable[[str, date], bool]

REPORT_WINDOW_DAYS = 30
HIGH_MOOD_THRESHOLD = 8


def is_due(habit: Habit, day: date) -> bool:
    """Whether ``habit`` counts toward ``day``'s total.

    Weekly habits count on Mondays only and monthly habits on the 1st only.
    The reminder job relies on this same predicate.
    """
    if habit.frequency == "daily":
        return True
    if habit.frequency == "weekly":
        return day.weekday() == 0
    if habit.frequency == "monthly":
        return day.day == 1
    return False


def daily_progress(habits: Iterable[Habit], is_completed: CompletionLookup, day) -> DailyProgress:
    day = parse_day(day)
    due = [habit for habit in habits if is_due(habit, day)]
    total = len(due)
    completed = sum(1 for habit in due if is_completed(habit.id, day))
    rate = (completed / total) * 100 if total > 0 else 0
    return DailyProgress(date=day, completed=completed, total=total, rate=rate)


def progress_for_days(habits: Iterable[Habit], is_completed: CompletionLookup, days: Iterable[date]) -> List[DailyProgress]:
    habits = list(habits)
    return [daily_progress(habits, is_completed, day) for day in days]


def week_progress(habits, is_completed: CompletionLookup, ref) -> List[DailyProgress]:
    return progress_for_days(habits, is_completed, week_days(parse_day(ref)))


def month_progress(habits, is_completed: CompletionLookup, ref, today: date) -> List[DailyProgress]:
    return progress_for_days(habits, is_completed, month_days(parse_day(ref), today))


def trailing_progress(habits, is_completed: CompletionLookup, today: date, days: int = REPORT_WINDOW_DAYS) -> List[DailyProgress]:
    return progress_for_days(habits, is_completed, trailing_days(days, today))


def _fully_done(day: DailyProgress) -> bool:
    return day.total > 0 and day.completed == day.total


def current_streak(progress: List[DailyProgress]) -> int:
    streak = 0
    for day in reversed(progress):
        if day.total == 0:
            continue
        if day.completed != day.total:
            break
        streak += 1
    return streak


def longest_streak(progress: List[DailyProgress]) -> int:
    longest = 0
    current = 0
    for day in progress:
        if day.total == 0:
            continue
        if _fully_done(day):
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


def period_summary(progress: List[DailyProgress]) -> dict:
    total = sum(day.total for day in progress)
    completed = sum(day.completed for day in progress)
    return {
        "total": total,
        "completed": completed,
        "pending": total - completed,
        "rate": round((completed / total) * 100) if total > 0 else 0,
    }


def today_stats(habits, is_completed: CompletionLookup, today: date) -> dict:
    return period_summary([daily_progress(habits, is_completed, today)])


def best_week(progress: List[DailyProgress], today: date, lookback_days: int = REPORT_WINDOW_DAYS) -> Optional[dict]:
    cutoff = today - timedelta(days=lookback_days - 1)
    weeks: dict[date, List[DailyProgress]] = {}
    for day in sorted(progress, key=lambda p: p.date):
        if cutoff <= day.date <= today:
            weeks.setdefault(week_start(day.date), []).append(day)

    best = None
    for start in sorted(weeks):
        days = weeks[start]
        total = sum(d.total for d in days)
        if total == 0:
            continue
        completed = sum(d.completed for d in days)
        rate = (completed / total) * 100
        if best is None or rate > best["rate"]:
            best = {
                "start": start,
                "end": start + timedelta(days=6),
                "completed": completed,
                "total": total,
                "rate": rate,
            }
    return best


def most_consistent_habit(habits: Iterable[Habit], is_completed: CompletionLookup, window: List[date]) -> Optional[dict]:
    best = None
    for habit in habits:
        count = sum(1 for day in window if is_completed(habit.id, day))
        if count > 0 and (best is None or count > best["completions"]):
            best = {"habit": habit, "completions": count}
    if best is not None:
        best["rate"] = round(best["completions"] / len(window) * 100) if window else 0
    return best


def highest_mood_days(
    entries: Iterable[MoodEntry],
    today: date,
    lookback_days: int = REPORT_WINDOW_DAYS,
    threshold: int = HIGH_MOOD_THRESHOLD,
    limit: int = 3,
) -> List[MoodEntry]:
    cutoff = today - timedelta(days=lookback_days)
    recent = [e for e in sorted(entries, key=lambda e: e.date) if e.date >= cutoff and e.mood >= threshold]
    return sorted(recent, key=lambda e: e.mood, reverse=True)[:limit]


class ProgressAggregator:
    """Read-only statistics over a habit store and a mood store.

    Nothing is cached; every call recomputes from the stores' current state.
    """

    def __init__(self, habit_store, mood_store=None, today: Callable[[], date] = date.today):
        self.habit_store = habit_store
        self.mood_store = mood_store
        self._today = today

    def _lookup(self, habit_id: str, day: date) -> bool:
        return self.habit_store.is_completed(habit_id, day)

    def get_daily_progress(self, day) -> DailyProgress:
        return daily_progress(self.habit_store.habits, self._lookup, day)

    def get_week_progress(self, ref=None) -> List[DailyProgress]:
        return week_progress(self.habit_store.habits, self._lookup, ref or self._today())

    def get_month_progress(self, ref=None) -> List[DailyProgress]:
        return month_progress(self.habit_store.habits, self._lookup, ref or self._today(), self._today())

    def get_trailing_progress(self, days: int = REPORT_WINDOW_DAYS) -> List[DailyProgress]:
        return trailing_progress(self.habit_store.habits, self._lookup, self._today(), days)

    def get_today_stats(self) -> dict:
        return today_stats(self.habit_store.habits, self._lookup, self._today())

    def get_streaks(self, progress: List[DailyProgress] | None = None) -> dict:
        if progress is None:
            progress = self.get_trailing_progress()
        return {"current": current_streak(progress), "longest": longest_streak(progress)}

    def get_monthly_report(self) -> dict:
        today = self._today()
        progress = self.get_trailing_progress()
        window = [day.date for day in progress]
        entries = self.mood_store.entries if self.mood_store is not None else []
        return {
            "today": today,
            "total_habits": len(self.habit_store.habits),
            "summary": period_summary(progress),
            "current_streak": current_streak(progress),
            "longest_streak": longest_streak(progress),
            "best_week": best_week(progress, today),
            "most_consistent_habit": most_consistent_habit(self.habit_store.habits, self._lookup, window),
            "highest_mood_days": highest_mood_days(entries, today),
            "progress": progress,
        }
