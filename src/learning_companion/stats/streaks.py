# src/learning_companion/stats/streaks.py

"""
Streak and dashboard statistics. Pure functions, no I/O.

Calendar days are local days: completion timestamps are converted to `tz`
(default: the system timezone at call time) before taking the date, so a
completion at 23:30 local time counts for that evening, not for the UTC day.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo

from ..tasks.task_models import Task

HISTOGRAM_DAYS = 7


@dataclass(slots=True, frozen=True)
class DayCount:
    day: date
    label: str  # short weekday name, e.g. "Mon"
    count: int


@dataclass(slots=True, frozen=True)
class DashboardStats:
    total: int
    completed: int
    rate: int
    streak: int
    week: list[DayCount]


def local_day(ts: datetime, tz: tzinfo | None = None) -> date:
    return ts.astimezone(tz).date()


def local_today(tz: tzinfo | None = None) -> date:
    return datetime.now().astimezone(tz).date()


def completion_days(tasks: Iterable[Task], tz: tzinfo | None = None) -> set[date]:
    """Distinct local dates with at least one completed task."""
    return {
        local_day(t.completed_at, tz)
        for t in tasks
        if t.completed and t.completed_at is not None
    }


def current_streak(tasks: Iterable[Task], today: date | None = None, tz: tzinfo | None = None) -> int:
    """
    Consecutive days with a completion, ending today.

    No completion today means 0, even if yesterday started a long run.
    """
    if today is None:
        today = local_today(tz)
    days = completion_days(tasks, tz)

    streak = 0
    day = today
    while day in days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def weekly_histogram(tasks: Iterable[Task], today: date | None = None, tz: tzinfo | None = None) -> list[DayCount]:
    """Completions per day for today-6 .. today, oldest first (always 7 entries)."""
    if today is None:
        today = local_today(tz)

    per_day = Counter(
        local_day(t.completed_at, tz)
        for t in tasks
        if t.completed and t.completed_at is not None
    )

    out: list[DayCount] = []
    for offset in range(HISTOGRAM_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        out.append(DayCount(day=day, label=day.strftime("%a"), count=per_day.get(day, 0)))
    return out


def completion_rate(tasks: Iterable[Task]) -> int:
    """Percentage of completed tasks, rounded half up; 0 for no tasks."""
    items = list(tasks)
    if not items:
        return 0
    done = sum(1 for t in items if t.completed)
    # int(x + 0.5) rounds .5 up, matching what the web dashboard showed.
    return int(100 * done / len(items) + 0.5)


def summarize(tasks: Iterable[Task], today: date | None = None, tz: tzinfo | None = None) -> DashboardStats:
    items = list(tasks)
    if today is None:
        today = local_today(tz)
    return DashboardStats(
        total=len(items),
        completed=sum(1 for t in items if t.completed),
        rate=completion_rate(items),
        streak=current_streak(items, today, tz),
        week=weekly_histogram(items, today, tz),
    )
