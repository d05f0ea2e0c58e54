# tests/test_streaks.py

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

from learning_companion.stats.streaks import (
    completion_rate,
    current_streak,
    summarize,
    weekly_histogram,
)
from learning_companion.tasks.task_cache import MemoryCache
from learning_companion.tasks.task_models import Task, TaskCategory
from learning_companion.tasks.task_sync import TaskSync

from .conftest import OWNER
from .fakes import FakeClock, FakeRemoteCollection

TODAY = date(2026, 3, 10)


def _done(task_id: str, when: datetime | None) -> Task:
    return Task(
        id=task_id,
        owner_id=OWNER,
        title=f"task {task_id}",
        category=TaskCategory.DAILY,
        created_at=datetime(2026, 3, 1, 8, 0, tzinfo=UTC),
        completed=when is not None,
        completed_at=when,
    )


def _at(day: date, hour: int = 12) -> datetime:
    return datetime(day.year, day.month, day.day, hour, 0, tzinfo=UTC)


def test_streak_counts_consecutive_days_up_to_today() -> None:
    tasks = [
        _done("a", _at(TODAY)),
        _done("b", _at(TODAY - timedelta(days=1))),
        _done("c", _at(TODAY - timedelta(days=2))),
        _done("d", _at(TODAY - timedelta(days=4))),
    ]
    assert current_streak(tasks, TODAY, UTC) == 3


def test_streak_is_zero_without_completion_today() -> None:
    tasks = [
        _done("a", _at(TODAY - timedelta(days=1))),
        _done("b", _at(TODAY - timedelta(days=2))),
    ]
    assert current_streak(tasks, TODAY, UTC) == 0


def test_streak_ignores_open_tasks_and_duplicates() -> None:
    tasks = [
        _done("a", _at(TODAY, 8)),
        _done("b", _at(TODAY, 18)),
        _done("open", None),
    ]
    assert current_streak(tasks, TODAY, UTC) == 1
    assert current_streak([], TODAY, UTC) == 0


def test_streak_uses_local_calendar_day() -> None:
    eastern = timezone(timedelta(hours=-5))
    # 02:00 UTC on the 10th is still the evening of the 9th at UTC-5.
    late_evening = datetime(2026, 3, 10, 2, 0, tzinfo=UTC)
    tasks = [_done("a", late_evening)]

    assert current_streak(tasks, date(2026, 3, 9), eastern) == 1
    assert current_streak(tasks, date(2026, 3, 10), eastern) == 0
    assert current_streak(tasks, date(2026, 3, 10), UTC) == 1


def test_streak_over_two_days_via_sync() -> None:
    clock = FakeClock(datetime(2026, 3, 9, 9, 0, tzinfo=UTC))
    sync = TaskSync(FakeRemoteCollection(), MemoryCache(), clock=clock)
    sync.load(OWNER)

    first = sync.add("Read 10 pages", "daily")
    sync.toggle(first.id)

    clock.advance(days=1)
    second = sync.add("Read 10 pages", "daily")
    sync.toggle(second.id)

    assert current_streak(sync.tasks, date(2026, 3, 10), UTC) == 2
    assert current_streak(sync.tasks, date(2026, 3, 11), UTC) == 0


def test_histogram_has_seven_days_oldest_first() -> None:
    tasks = [
        _done("a", _at(TODAY)),
        _done("b", _at(TODAY)),
        _done("c", _at(TODAY - timedelta(days=6))),
        _done("old", _at(TODAY - timedelta(days=7))),
        _done("open", None),
    ]

    week = weekly_histogram(tasks, TODAY, UTC)

    assert [d.day for d in week] == [TODAY - timedelta(days=n) for n in range(6, -1, -1)]
    assert [d.count for d in week] == [1, 0, 0, 0, 0, 0, 2]
    assert week[-1].label == "Tue"
    assert sum(d.count for d in week) == 3


def test_histogram_of_nothing_is_all_zeros() -> None:
    week = weekly_histogram([], TODAY, UTC)
    assert len(week) == 7
    assert all(d.count == 0 for d in week)


def test_completion_rate_rounds_half_up() -> None:
    assert completion_rate([]) == 0

    one_of_eight = [_done("done", _at(TODAY))] + [_done(f"o{i}", None) for i in range(7)]
    assert completion_rate(one_of_eight) == 13  # 12.5

    two_of_three = [_done("a", _at(TODAY)), _done("b", _at(TODAY)), _done("c", None)]
    assert completion_rate(two_of_three) == 67

    assert completion_rate([_done("a", _at(TODAY))]) == 100


def test_summarize_combines_everything() -> None:
    tasks = [
        _done("a", _at(TODAY)),
        _done("b", _at(TODAY - timedelta(days=1))),
        _done("c", None),
        _done("d", None),
    ]

    stats = summarize(tasks, TODAY, UTC)

    assert stats.total == 4
    assert stats.completed == 2
    assert stats.rate == 50
    assert stats.streak == 2
    assert len(stats.week) == 7
    assert stats.week[-1].count == 1
