"""Streak service: the public operations of learner-streaks.

One StreakService is built at process start (see cli.main and
mcp_server.main) and handed to whatever surface serves requests.
"""
from __future__ import annotations

import logging
from datetime import datetime, time, timezone
from typing import Any

from learner_streaks.activities import (
    ActivityType,
    ensure_utc,
    parse_activity_type,
    points_table,
    utc_now,
)
from learner_streaks.config import Settings
from learner_streaks.db import Database
from learner_streaks.errors import RecordNotFound
from learner_streaks.leaderboard import top_entries
from learner_streaks.records import (
    StreakRecord,
    StreakSnapshot,
    apply_activity,
    close_out,
    is_lapsed,
    record_from_result,
    refresh_record,
)
from learner_streaks.streaks import ONE_DAY, StreakResult, activity_day, calculate_streak

logger = logging.getLogger(__name__)


class StreakService:
    """Activity logging, streak records, leaderboard and maintenance sweep.

    Every write happens inside Database.transaction(), so the log append and
    the record upsert for one event either both land or neither does.
    """

    def __init__(self, db: Database, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or Settings()

    def _compute(self, learner_id: str, now: datetime) -> StreakResult:
        events = self.db.get_recent_activities(learner_id, self.settings.lookback_limit)
        return calculate_streak(events, now=now)

    def record_activity(
        self,
        learner_id: str,
        activity_type: str | ActivityType,
        activity_data: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> StreakSnapshot:
        """Log one activity and bring the learner's streak record up to date."""
        kind = parse_activity_type(activity_type)
        now = ensure_utc(now or utc_now())
        with self.db.transaction():
            event = self.db.append_activity(learner_id, kind, activity_data, occurred_at=now)
            result = self._compute(learner_id, now)
            prior = self.db.get_streak_record(learner_id)
            record, broken = apply_activity(prior, learner_id, result, now)
            if broken is not None:
                self.db.append_streak_run(learner_id, broken)
                logger.info(
                    "Streak broken for %s: %d days (%s to %s)",
                    learner_id, broken.duration, broken.start_date, broken.end_date,
                )
            self.db.save_streak_record(record)
        logger.debug(
            "Recorded %s for %s (+%d points), streak now %d",
            kind.value, learner_id, event.points, record.current_streak,
        )
        return StreakSnapshot(
            record=record, has_activity_today=result.has_activity_today, points=event.points
        )

    def get_streak(self, learner_id: str, now: datetime | None = None) -> StreakRecord:
        """Return the learner's record, creating it from the log on first touch."""
        record = self.db.get_streak_record(learner_id)
        if record is not None:
            return record
        now = ensure_utc(now or utc_now())
        with self.db.transaction():
            # Another writer may have created it since the read above
            if self.db.get_streak_record(learner_id) is None:
                self.db.save_streak_record(
                    record_from_result(learner_id, self._compute(learner_id, now), now)
                )
                logger.info("Created streak record for %s", learner_id)
        return self.db.require_streak_record(learner_id)

    def recalculate_streak(self, learner_id: str, now: datetime | None = None) -> StreakRecord:
        """Rebuild a record's live fields from the log, e.g. after a lookback change.

        History and longest_streak are kept. Raises RecordNotFound when the
        learner has neither a record nor any logged activity.
        """
        now = ensure_utc(now or utc_now())
        with self.db.transaction():
            prior = self.db.get_streak_record(learner_id)
            if prior is None and self.db.count_activities(learner_id) == 0:
                raise RecordNotFound(learner_id)
            result = self._compute(learner_id, now)
            if prior is None:
                record = record_from_result(learner_id, result, now)
            else:
                record = refresh_record(prior, result, now)
            self.db.save_streak_record(record)
        return self.db.require_streak_record(learner_id)

    def get_leaderboard(self, limit: int | None = None) -> list[dict]:
        """Top learners by current streak, then longest streak."""
        if limit is None:
            limit = self.settings.leaderboard_limit
        if limit < 1:
            return []
        return top_entries(self.db.get_top_streak_records(limit), limit)

    def run_maintenance_sweep(self, now: datetime | None = None) -> int:
        """Zero every live streak with no activity today or yesterday.

        Returns the number of learners closed out. Each close-out only lands
        if the record is unchanged since it was selected, so an activity
        recorded mid-sweep is never wiped out. Safe to re-run.
        """
        now = ensure_utc(now or utc_now())
        cutoff = datetime.combine(activity_day(now) - ONE_DAY, time.min, tzinfo=timezone.utc)
        closed = 0
        for record in self.db.get_lapsed_records(cutoff):
            if not is_lapsed(record, now):
                continue
            updated, run = close_out(record, now)
            with self.db.transaction():
                if not self.db.compare_and_save_streak_record(record, updated):
                    logger.info("Skipped %s: record changed during sweep", record.learner_id)
                    continue
                self.db.append_streak_run(record.learner_id, run)
            closed += 1
        logger.info("Maintenance sweep closed out %d streaks", closed)
        return closed

    def register_learner(
        self, learner_id: str, name: str, email: str | None = None, avatar: str | None = None
    ) -> dict:
        """Store the display identity used by the leaderboard."""
        with self.db.transaction():
            self.db.upsert_learner(learner_id, name, email=email, avatar=avatar)
        return self.db.get_learner(learner_id)

    @staticmethod
    def activity_points() -> dict[str, int]:
        return points_table()
