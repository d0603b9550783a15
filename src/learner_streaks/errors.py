"""Error taxonomy for learner-streaks."""

from __future__ import annotations


class StreakError(Exception):
    """Base class for all engine errors."""


class InvalidActivityType(StreakError, ValueError):
    """Activity type is not one of the known activity types."""

    def __init__(self, activity_type: object) -> None:
        self.activity_type = activity_type
        super().__init__(f"Invalid activity type: {activity_type!r}")


class StorageUnavailable(StreakError):
    """The database could not be read or written. Safe to retry."""


class RecordNotFound(StreakError, LookupError):
    """No streak record exists and there is no history to build one from."""

    def __init__(self, learner_id: str) -> None:
        self.learner_id = learner_id
        super().__init__(f"No streak record for learner {learner_id!r}")
