"""Per-learner streak records and the rules that update them.

Everything here is pure: the service loads a record, applies one of these
functions, and writes the returned record back.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any

from learner_streaks.streaks import ONE_DAY, StreakResult, activity_day


class StreakEndReason(str, Enum):
    BROKEN = "broken"


@dataclass
class StreakRun:
    """A closed streak run kept in a record's history."""

    start_date: date
    end_date: date
    duration: int
    reason: StreakEndReason = StreakEndReason.BROKEN

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "duration": self.duration,
            "reason": self.reason.value,
        }


@dataclass
class StreakRecord:
    learner_id: str
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_at: datetime | None = None
    streak_start_date: date | None = None
    total_days_active: int = 0
    streak_history: list[StreakRun] = field(default_factory=list)
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "learner_id": self.learner_id,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_activity_at": (
                self.last_activity_at.isoformat() if self.last_activity_at else None
            ),
            "streak_start_date": (
                self.streak_start_date.isoformat() if self.streak_start_date else None
            ),
            "total_days_active": self.total_days_active,
            "streak_history": [run.to_dict() for run in self.streak_history],
        }


@dataclass
class StreakSnapshot:
    """What record_activity hands back: the stored record plus per-call facts."""

    record: StreakRecord
    has_activity_today: bool
    points: int

    def to_dict(self) -> dict[str, Any]:
        data = self.record.to_dict()
        data["has_activity_today"] = self.has_activity_today
        data["points"] = self.points
        return data


def record_from_result(learner_id: str, result: StreakResult, now: datetime) -> StreakRecord:
    """Build a brand new record from a calculator result."""
    return StreakRecord(
        learner_id=learner_id,
        current_streak=result.current_streak,
        longest_streak=result.longest_streak,
        last_activity_at=result.last_activity_at,
        streak_start_date=result.streak_start_date,
        total_days_active=result.total_days_active,
        updated_at=now,
    )


def days_since(moment: datetime, now: datetime) -> int:
    """Whole UTC calendar days between moment and now."""
    return (activity_day(now) - activity_day(moment)).days


def closed_run(record: StreakRecord) -> StreakRun:
    """The history entry that closes out a record's live streak."""
    if record.streak_start_date is None or record.last_activity_at is None:
        raise ValueError(f"Record for {record.learner_id!r} has no live streak to close")
    return StreakRun(
        start_date=record.streak_start_date,
        end_date=activity_day(record.last_activity_at),
        duration=record.current_streak,
        reason=StreakEndReason.BROKEN,
    )


def is_break(prior: StreakRecord, result: StreakResult, now: datetime) -> bool:
    """True when a new activity starts over after the prior streak lapsed.

    The prior streak must still be live on the record (the sweep has not
    closed it yet), the new streak must be a fresh single day, and more than
    one calendar day must separate the prior last activity from now.
    """
    return (
        prior.current_streak > 0
        and result.current_streak == 1
        and prior.last_activity_at is not None
        and days_since(prior.last_activity_at, now) > 1
    )


def apply_activity(
    prior: StreakRecord | None, learner_id: str, result: StreakResult, now: datetime
) -> tuple[StreakRecord, StreakRun | None]:
    """Fold a freshly computed result into the learner's record.

    Returns (new record, broken run or None). Live fields are always taken
    from the result; longest_streak never decreases.
    """
    if prior is None:
        return record_from_result(learner_id, result, now), None

    broken = closed_run(prior) if is_break(prior, result, now) else None
    record = refresh_record(prior, result, now)
    if broken:
        record.streak_history = prior.streak_history + [broken]
    return record, broken


def refresh_record(prior: StreakRecord, result: StreakResult, now: datetime) -> StreakRecord:
    """Overwrite a record's live fields from a result without touching history."""
    return replace(
        prior,
        current_streak=result.current_streak,
        longest_streak=max(prior.longest_streak, result.longest_streak, result.current_streak),
        last_activity_at=result.last_activity_at,
        streak_start_date=result.streak_start_date,
        total_days_active=result.total_days_active,
        streak_history=list(prior.streak_history),
        updated_at=now,
    )


def is_lapsed(record: StreakRecord, now: datetime) -> bool:
    """True when a live streak has had no activity today or yesterday."""
    return (
        record.current_streak > 0
        and record.last_activity_at is not None
        and activity_day(record.last_activity_at) < activity_day(now) - ONE_DAY
    )


def is_at_risk(record: StreakRecord, now: datetime) -> bool:
    """True when a live streak ends yesterday: one more idle day breaks it."""
    return (
        record.current_streak > 0
        and record.last_activity_at is not None
        and activity_day(record.last_activity_at) == activity_day(now) - ONE_DAY
    )


def close_out(record: StreakRecord, now: datetime) -> tuple[StreakRecord, StreakRun]:
    """Zero a lapsed streak and move it into history."""
    run = closed_run(record)
    closed = replace(
        record,
        current_streak=0,
        streak_start_date=None,
        streak_history=record.streak_history + [run],
        updated_at=now,
    )
    return closed, run
