"""Activity types, points table, and the ActivityEvent record.

Points are fixed per activity type and stored redundantly on each event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from learner_streaks.errors import InvalidActivityType


class ActivityType(str, Enum):
    COURSE_PROGRESS = "course_progress"
    ASSIGNMENT_SUBMIT = "assignment_submit"
    LIVE_CLASS_ATTEND = "live_class_attend"
    REPLAY_WATCH = "replay_watch"
    QUIZ_COMPLETE = "quiz_complete"
    FORUM_POST = "forum_post"


ACTIVITY_POINTS: dict[ActivityType, int] = {
    ActivityType.COURSE_PROGRESS: 10,
    ActivityType.ASSIGNMENT_SUBMIT: 15,
    ActivityType.LIVE_CLASS_ATTEND: 20,
    ActivityType.REPLAY_WATCH: 5,
    ActivityType.QUIZ_COMPLETE: 8,
    ActivityType.FORUM_POST: 3,
}

# Unreachable once parse_activity_type has run, kept for stored legacy rows
DEFAULT_POINTS = 5


@dataclass
class ActivityEvent:
    """One logged learner action. Immutable once appended."""

    learner_id: str
    activity_type: ActivityType
    points: int
    occurred_at: datetime
    activity_data: dict[str, Any] = field(default_factory=dict)
    id: int | None = None


def parse_activity_type(value: str | ActivityType) -> ActivityType:
    """Return the ActivityType for value, raising InvalidActivityType otherwise."""
    if isinstance(value, ActivityType):
        return value
    try:
        return ActivityType(value)
    except ValueError:
        raise InvalidActivityType(value) from None


def get_activity_points(activity_type: str | ActivityType) -> int:
    """Points for one event of the given type. Unknown types earn DEFAULT_POINTS."""
    try:
        return ACTIVITY_POINTS[ActivityType(activity_type)]
    except ValueError:
        return DEFAULT_POINTS


def points_table() -> dict[str, int]:
    """Full points table keyed by activity type value, in declaration order."""
    return {t.value: ACTIVITY_POINTS[t] for t in ActivityType}


def ensure_utc(moment: datetime) -> datetime:
    """Normalize an aware datetime to UTC. Naive datetimes are rejected."""
    if moment.tzinfo is None or moment.utcoffset() is None:
        raise ValueError(f"Timestamp must be timezone-aware: {moment.isoformat()}")
    return moment.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)
