"""Tests for streak record update rules."""

from datetime import date, datetime, timezone

import pytest

from learner_streaks.records import (
    StreakEndReason,
    StreakRecord,
    StreakRun,
    apply_activity,
    close_out,
    is_at_risk,
    is_break,
    is_lapsed,
    refresh_record,
)
from learner_streaks.streaks import StreakResult


def _ts(day: int, hour: int = 12) -> datetime:
    return datetime(2026, 1, day, hour, 0, tzinfo=timezone.utc)


def _result(current: int, longest: int, last_day: int, start_day: int | None, total: int) -> StreakResult:
    return StreakResult(
        current_streak=current,
        longest_streak=longest,
        last_activity_at=_ts(last_day),
        streak_start_date=date(2026, 1, start_day) if start_day else None,
        total_days_active=total,
        has_activity_today=True,
    )


def _record(current: int = 2, longest: int = 2, last_day: int = 2, start_day: int | None = 1) -> StreakRecord:
    return StreakRecord(
        learner_id="learner-1",
        current_streak=current,
        longest_streak=longest,
        last_activity_at=_ts(last_day),
        streak_start_date=date(2026, 1, start_day) if start_day else None,
        total_days_active=current,
    )


class TestApplyActivity:
    def test_no_prior_record_creates_one(self):
        record, broken = apply_activity(None, "learner-1", _result(1, 1, 5, 5, 1), _ts(5))
        assert broken is None
        assert record.learner_id == "learner-1"
        assert record.current_streak == 1
        assert record.streak_history == []
        assert record.updated_at == _ts(5)

    def test_continuing_streak_no_break(self):
        record, broken = apply_activity(_record(), "learner-1", _result(3, 3, 3, 1, 3), _ts(3))
        assert broken is None
        assert record.current_streak == 3
        assert record.streak_history == []

    def test_gap_breaks_streak(self):
        # Active Jan 1-2, silent Jan 3-4, active again Jan 5
        record, broken = apply_activity(_record(), "learner-1", _result(1, 2, 5, 5, 3), _ts(5))
        assert broken == StreakRun(
            start_date=date(2026, 1, 1),
            end_date=date(2026, 1, 2),
            duration=2,
            reason=StreakEndReason.BROKEN,
        )
        assert record.streak_history == [broken]
        assert record.current_streak == 1
        assert record.streak_start_date == date(2026, 1, 5)
        assert record.longest_streak == 2

    def test_longest_never_decreases(self):
        prior = _record(current=1, longest=30, last_day=4, start_day=4)
        record, _ = apply_activity(prior, "learner-1", _result(2, 2, 5, 4, 2), _ts(5))
        assert record.longest_streak == 30

    def test_history_preserved_on_break(self):
        earlier = StreakRun(date(2025, 12, 1), date(2025, 12, 3), 3)
        prior = _record()
        prior.streak_history = [earlier]
        record, broken = apply_activity(prior, "learner-1", _result(1, 3, 5, 5, 6), _ts(5))
        assert record.streak_history == [earlier, broken]
        assert prior.streak_history == [earlier]

    def test_swept_record_does_not_break_again(self):
        prior = _record(current=0, start_day=None)
        record, broken = apply_activity(prior, "learner-1", _result(1, 2, 5, 5, 3), _ts(5))
        assert broken is None
        assert record.streak_history == []


class TestIsBreak:
    def test_same_day_restart_is_not_break(self):
        prior = _record(current=1, longest=1, last_day=5, start_day=5)
        assert not is_break(prior, _result(1, 1, 5, 5, 1), _ts(5, 20))

    def test_yesterday_is_not_break(self):
        assert not is_break(_record(last_day=4), _result(1, 2, 5, 5, 3), _ts(5))

    def test_two_day_gap_is_break(self):
        assert is_break(_record(last_day=3), _result(1, 2, 5, 5, 3), _ts(5))


class TestRefreshRecord:
    def test_overwrites_live_fields_keeps_history(self):
        run = StreakRun(date(2025, 12, 1), date(2025, 12, 3), 3)
        prior = _record(current=5, longest=9)
        prior.streak_history = [run]
        record = refresh_record(prior, _result(2, 4, 5, 4, 7), _ts(5))
        assert record.current_streak == 2
        assert record.longest_streak == 9
        assert record.total_days_active == 7
        assert record.streak_history == [run]


class TestLapsedAndAtRisk:
    def test_active_today_not_lapsed(self):
        assert not is_lapsed(_record(last_day=5), _ts(5))

    def test_active_yesterday_not_lapsed_but_at_risk(self):
        record = _record(last_day=4)
        assert not is_lapsed(record, _ts(5))
        assert is_at_risk(record, _ts(5))

    def test_two_days_stale_is_lapsed(self):
        assert is_lapsed(_record(last_day=3), _ts(5))

    def test_zero_streak_never_lapsed(self):
        assert not is_lapsed(_record(current=0, start_day=None, last_day=1), _ts(5))

    def test_active_today_not_at_risk(self):
        assert not is_at_risk(_record(last_day=5), _ts(5))


class TestCloseOut:
    def test_zeroes_streak_and_records_run(self):
        record = _record(current=5, longest=7, last_day=3, start_day=1)
        closed, run = close_out(record, _ts(5))
        assert closed.current_streak == 0
        assert closed.streak_start_date is None
        assert closed.longest_streak == 7
        assert closed.last_activity_at == _ts(3)
        assert run == StreakRun(date(2026, 1, 1), date(2026, 1, 3), 5, StreakEndReason.BROKEN)
        assert closed.streak_history == [run]

    def test_no_live_streak_raises(self):
        with pytest.raises(ValueError):
            close_out(_record(current=0, start_day=None), _ts(5))


class TestToDict:
    def test_record_serializes_dates(self):
        record = _record()
        record.streak_history = [StreakRun(date(2025, 12, 1), date(2025, 12, 3), 3)]
        data = record.to_dict()
        assert data["streak_start_date"] == "2026-01-01"
        assert data["last_activity_at"] == "2026-01-02T12:00:00+00:00"
        assert data["streak_history"] == [
            {"start_date": "2025-12-01", "end_date": "2025-12-03", "duration": 3, "reason": "broken"}
        ]

    def test_empty_record(self):
        data = StreakRecord(learner_id="x").to_dict()
        assert data["last_activity_at"] is None
        assert data["streak_start_date"] is None
        assert data["streak_history"] == []
