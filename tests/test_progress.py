from datetime import date, timedelta

from habitlog import progress
from habitlog.dates import each_day
from habitlog.models import DailyProgress, Habit, MoodEntry


def _habit(habit_id, frequency="daily", name=None):
    return Habit(id=habit_id, name=name or habit_id, category="health", frequency=frequency, created_at="")


def _lookup(done):
    return lambda habit_id, day: (habit_id, day) in done


def _days(pairs, start=date(2024, 1, 1)):
    return [
        DailyProgress(date=start + timedelta(days=i), total=total, completed=completed, rate=0)
        for i, (total, completed) in enumerate(pairs)
    ]


def test_weekly_habits_count_only_on_mondays():
    habits = [_habit("w", "weekly")]
    for day in each_day(date(2024, 1, 1), date(2024, 1, 14)):
        result = progress.daily_progress(habits, _lookup(set()), day)
        assert result.total == (1 if day.weekday() == 0 else 0)


def test_monthly_habits_count_only_on_the_first():
    habits = [_habit("m", "monthly")]
    assert progress.daily_progress(habits, _lookup(set()), date(2024, 2, 1)).total == 1
    assert progress.daily_progress(habits, _lookup(set()), date(2024, 2, 2)).total == 0


def test_daily_progress_rate():
    habits = [_habit("a"), _habit("b"), _habit("w", "weekly")]
    tuesday = date(2024, 1, 2)
    result = progress.daily_progress(habits, _lookup({("a", tuesday), ("w", tuesday)}), tuesday)
    assert (result.completed, result.total, result.rate) == (1, 2, 50)
    empty = progress.daily_progress([], _lookup(set()), tuesday)
    assert (empty.total, empty.rate) == (0, 0)


def test_week_progress_covers_monday_to_sunday():
    week = progress.week_progress([_habit("a")], _lookup(set()), date(2024, 1, 4))
    assert [day.date for day in week] == each_day(date(2024, 1, 1), date(2024, 1, 7))


def test_month_progress_lengths():
    today = date(2024, 3, 15)
    assert len(progress.month_progress([_habit("a")], _lookup(set()), today, today)) == today.day
    assert len(progress.month_progress([_habit("a")], _lookup(set()), date(2024, 2, 1), today)) == 29


def test_current_streak_broken_by_latest_day():
    assert progress.current_streak(_days([(1, 1), (1, 1), (0, 0), (1, 0)])) == 0


def test_current_streak_skips_days_without_habits():
    assert progress.current_streak(_days([(1, 0), (0, 0), (1, 1), (1, 1)])) == 2
    assert progress.current_streak(_days([(1, 1), (0, 0), (1, 1)])) == 2


def test_longest_streak():
    assert progress.longest_streak(_days([(1, 1), (1, 1), (1, 0), (1, 1), (1, 1), (1, 1)])) == 3
    assert progress.longest_streak(_days([(1, 1), (0, 0), (1, 1)])) == 2
    assert progress.longest_streak([]) == 0


def test_period_summary_and_today_stats():
    summary = progress.period_summary(_days([(2, 1), (2, 2), (0, 0)]))
    assert summary == {"total": 4, "completed": 3, "pending": 1, "rate": 75}
    today = date(2024, 1, 2)
    stats = progress.today_stats([_habit("a"), _habit("b"), _habit("w", "weekly")], _lookup({("a", today)}), today)
    assert stats == {"total": 2, "completed": 1, "pending": 1, "rate": 50}


def test_best_week_picks_highest_rate():
    today = date(2024, 1, 31)
    habits = [_habit("a")]
    done = {("a", day) for day in each_day(date(2024, 1, 15), date(2024, 1, 21))}
    series = progress.trailing_progress(habits, _lookup(done), today)
    best = progress.best_week(series, today)
    assert best["start"] == date(2024, 1, 15)
    assert best["end"] == date(2024, 1, 21)
    assert best["rate"] == 100


def test_best_week_ties_go_to_the_earliest_week():
    today = date(2024, 1, 31)
    done = {("a", day) for day in each_day(date(2024, 1, 8), date(2024, 1, 21))}
    series = progress.trailing_progress([_habit("a")], _lookup(done), today)
    assert progress.best_week(series, today)["start"] == date(2024, 1, 8)


def test_best_week_none_without_habits():
    today = date(2024, 1, 31)
    series = progress.trailing_progress([], _lookup(set()), today)
    assert progress.best_week(series, today) is None


def test_most_consistent_habit():
    window = each_day(date(2024, 1, 1), date(2024, 1, 10))
    done = {("a", d) for d in window[:3]} | {("b", d) for d in window[:5]}
    best = progress.most_consistent_habit([_habit("a"), _habit("b")], _lookup(done), window)
    assert best["habit"].id == "b"
    assert best["completions"] == 5
    assert best["rate"] == 50


def test_most_consistent_habit_ties_and_empty():
    window = each_day(date(2024, 1, 1), date(2024, 1, 10))
    done = {("a", window[0]), ("a", window[1]), ("b", window[2]), ("b", window[3])}
    assert progress.most_consistent_habit([_habit("a"), _habit("b")], _lookup(done), window)["habit"].id == "a"
    assert progress.most_consistent_habit([_habit("a")], _lookup(set()), window) is None


def test_highest_mood_days():
    today = date(2024, 2, 1)
    entries = [
        MoodEntry(date=today - timedelta(days=40), mood=10),
        MoodEntry(date=today - timedelta(days=20), mood=8),
        MoodEntry(date=today - timedelta(days=10), mood=9),
        MoodEntry(date=today - timedelta(days=5), mood=7),
        MoodEntry(date=today - timedelta(days=3), mood=10),
        MoodEntry(date=today - timedelta(days=1), mood=8),
    ]
    top = progress.highest_mood_days(entries, today)
    assert [e.mood for e in top] == [10, 9, 8]
    assert top[2].date == today - timedelta(days=20)


class _StubHabits:
    def __init__(self, habits, done):
        self.habits = habits
        self._done = done

    def is_completed(self, habit_id, day):
        return (habit_id, day) in self._done


class _StubMoods:
    entries = [MoodEntry(date=date(2024, 1, 30), mood=9)]


def test_aggregator_recomputes_from_store_state():
    today = date(2024, 1, 31)
    done = set()
    store = _StubHabits([_habit("a")], done)
    aggregator = progress.ProgressAggregator(store, _StubMoods(), today=lambda: today)
    assert aggregator.get_daily_progress(today).completed == 0
    done.add(("a", today))
    assert aggregator.get_daily_progress(today).completed == 1
    assert aggregator.get_streaks()["current"] == 1
    report = aggregator.get_monthly_report()
    assert report["total_habits"] == 1
    assert report["most_consistent_habit"]["habit"].id == "a"
    assert [e.mood for e in report["highest_mood_days"]] == [9]
    assert len(report["progress"]) == 30


def test_week_view_and_best_week_share_iso_weeks():
    sunday = date(2024, 1, 21)
    done = {("a", day) for day in each_day(date(2024, 1, 15), sunday)}
    aggregator = progress.ProgressAggregator(_StubHabits([_habit("a")], done), _StubMoods(), today=lambda: sunday)
    week = aggregator.get_week_progress()
    assert [day.date for day in week] == each_day(date(2024, 1, 15), sunday)
    assert aggregator.get_monthly_report()["best_week"]["start"] == week[0].date
