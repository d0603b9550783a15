"""Streak calculation for learner-streaks.

Pure functions that turn a learner's activity history into streak metrics.
Calendar days are UTC days.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from learner_streaks.activities import ActivityEvent, ensure_utc, utc_now

ONE_DAY = timedelta(days=1)


@dataclass
class StreakResult:
    current_streak: int
    longest_streak: int
    last_activity_at: datetime | None
    streak_start_date: date | None  # None when current_streak is 0
    total_days_active: int
    has_activity_today: bool


def activity_day(moment: datetime) -> date:
    """Return the UTC calendar date of an aware timestamp."""
    return ensure_utc(moment).date()


def group_by_day(events: Iterable[ActivityEvent]) -> dict[date, list[ActivityEvent]]:
    """Group events by the UTC calendar date they occurred on."""
    by_day: dict[date, list[ActivityEvent]] = {}
    for event in events:
        by_day.setdefault(activity_day(event.occurred_at), []).append(event)
    return by_day


def count_back_from(active_days: set[date], start: date) -> tuple[int, date | None]:
    """Count consecutive active days walking backwards from start (inclusive).

    Returns (count, earliest day of the run). The run is empty when start
    itself is not active.
    """
    count = 0
    earliest: date | None = None
    current = start
    while current in active_days:
        count += 1
        earliest = current
        current -= ONE_DAY
    return count, earliest


def longest_run(sorted_days: Sequence[date]) -> int:
    """Length of the longest run of consecutive days in an ascending sequence."""
    if not sorted_days:
        return 0
    longest = 1
    run = 1
    for prev, curr in zip(sorted_days, sorted_days[1:]):
        if curr - prev == ONE_DAY:
            run += 1
        else:
            longest = max(longest, run)
            run = 1
    return max(longest, run)


def calculate_streak(
    events: Sequence[ActivityEvent], now: datetime | None = None
) -> StreakResult:
    """Calculate streak metrics from a learner's activity history.

    Rules:
    - Active day = UTC date with at least one event (several events count once)
    - Current streak = consecutive active days ending today, or ending
      yesterday when today has no activity yet (one day of grace)
    - Longest streak = longest consecutive run in the history, never less
      than the current streak
    - The history is whatever window the caller loaded; runs older than
      that window are not seen
    """
    if not events:
        return StreakResult(
            current_streak=0,
            longest_streak=0,
            last_activity_at=None,
            streak_start_date=None,
            total_days_active=0,
            has_activity_today=False,
        )

    today = activity_day(now or utc_now())
    active_days = set(group_by_day(events))

    has_activity_today = today in active_days
    anchor = today if has_activity_today else today - ONE_DAY
    current_streak, streak_start_date = count_back_from(active_days, anchor)

    longest = max(longest_run(sorted(active_days)), current_streak)

    return StreakResult(
        current_streak=current_streak,
        longest_streak=longest,
        last_activity_at=max(ensure_utc(e.occurred_at) for e in events),
        streak_start_date=streak_start_date,
        total_days_active=len(active_days),
        has_activity_today=has_activity_today,
    )
