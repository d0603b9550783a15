"""Tests for CLI commands."""

from __future__ import annotations

import pytest

from learner_streaks.cli import (
    build_parser,
    do_config_set,
    do_config_show,
    do_leaderboard,
    do_learner_add,
    do_points,
    do_record,
    do_recalculate,
    do_streak,
    do_sweep,
    main,
)
from learner_streaks.config import Settings, load_config
from learner_streaks.db import Database
from learner_streaks.errors import RecordNotFound
from learner_streaks.service import StreakService


@pytest.fixture
def db(tmp_path):
    """Create a temporary database for testing."""
    database = Database(db_path=tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def service(db):
    return StreakService(db, Settings(db_path=db.db_path))


# ── Argument Parsing ──────────────────────────────────────────────────────────


class TestArgumentParsing:
    def test_no_args_defaults_to_none_command(self):
        args = build_parser().parse_args([])
        assert args.command is None

    def test_record_command(self):
        args = build_parser().parse_args(["record", "learner-1", "quiz_complete", "--data", "{}"])
        assert args.command == "record"
        assert args.learner == "learner-1"
        assert args.activity_type == "quiz_complete"
        assert args.data == "{}"

    def test_record_rejects_unknown_type(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["record", "learner-1", "nap_time"])

    def test_leaderboard_limit(self):
        args = build_parser().parse_args(["leaderboard", "-n", "3"])
        assert args.limit == 3

    def test_global_options(self):
        args = build_parser().parse_args(["--db", "/tmp/x.db", "-v", "sweep"])
        assert args.db == "/tmp/x.db"
        assert args.verbose is True
        assert args.command == "sweep"

    def test_learner_add(self):
        args = build_parser().parse_args(["learner", "add", "l1", "--name", "Ada"])
        assert args.learner_command == "add"
        assert args.name == "Ada"

    def test_invalid_command_raises(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["nonexistent"])


# ── Commands ──────────────────────────────────────────────────────────────────


class TestDoRecord:
    def test_records_and_returns_snapshot(self, service, db):
        result = do_record(service, "learner-1", "quiz_complete", data='{"quiz": 3}')
        assert result["ok"] is True
        assert result["current_streak"] == 1
        assert result["points"] == 8
        assert result["has_activity_today"] is True
        (event,) = db.get_recent_activities("learner-1", limit=1)
        assert event.activity_data == {"quiz": 3}

    def test_bad_json(self, service, db):
        result = do_record(service, "learner-1", "quiz_complete", data="{oops")
        assert result == {"ok": False, "reason": "bad_data"}
        assert db.count_activities("learner-1") == 0

    def test_non_object_json(self, service):
        result = do_record(service, "learner-1", "quiz_complete", data="[1, 2]")
        assert result["ok"] is False


class TestDoStreak:
    def test_new_learner(self, service):
        result = do_streak(service, "learner-1")
        assert result["ok"] is True
        assert result["current_streak"] == 0
        assert result["at_risk"] is False

    def test_after_activity(self, service):
        do_record(service, "learner-1", "forum_post")
        result = do_streak(service, "learner-1")
        assert result["current_streak"] == 1
        assert result["total_days_active"] == 1

    def test_recalculate_unknown_learner(self, service):
        with pytest.raises(RecordNotFound):
            do_recalculate(service, "nobody")


class TestDoLeaderboard:
    def test_lists_registered_learners(self, service):
        do_learner_add(service, "learner-1", "Ada")
        do_record(service, "learner-1", "forum_post")
        do_record(service, "learner-2", "forum_post")
        result = do_leaderboard(service, limit=5, highlight="learner-1")
        assert result["count"] == 2
        names = {e["learner_id"]: e["learner_name"] for e in result["entries"]}
        assert names == {"learner-1": "Ada", "learner-2": None}

    def test_empty(self, service):
        assert do_leaderboard(service)["count"] == 0


class TestOtherCommands:
    def test_sweep_nothing_to_do(self, service):
        do_record(service, "learner-1", "forum_post")
        assert do_sweep(service) == {"ok": True, "closed": 0}

    def test_points(self, service):
        result = do_points(service)
        assert result["points"]["assignment_submit"] == 15

    def test_learner_add(self, service):
        result = do_learner_add(service, "learner-1", "Ada", email="ada@example.com")
        assert result["ok"] is True
        assert result["name"] == "Ada"
        assert result["email"] == "ada@example.com"


class TestConfigCommands:
    def test_set_valid(self, tmp_path):
        path = tmp_path / "config.json"
        result = do_config_set("leaderboard_limit", "25", path)
        assert result == {"ok": True, "key": "leaderboard_limit", "value": 25}
        assert load_config(path)["leaderboard_limit"] == 25

    def test_set_unknown_key(self, tmp_path):
        result = do_config_set("colour", "blue", tmp_path / "config.json")
        assert result["reason"] == "unknown_key"

    def test_set_bad_value(self, tmp_path):
        result = do_config_set("lookback_limit", "many", tmp_path / "config.json")
        assert result["reason"] == "bad_value"

    def test_show_applies_db_override(self, tmp_path):
        result = do_config_show(tmp_path / "config.json", db_override=str(tmp_path / "o.db"))
        assert result["db_path"] == str(tmp_path / "o.db")


# ── main ──────────────────────────────────────────────────────────────────────


class TestMain:
    def _argv(self, tmp_path, *rest):
        return ["--db", str(tmp_path / "main.db"), "--config", str(tmp_path / "config.json"), *rest]

    def test_record_then_streak(self, tmp_path):
        main(self._argv(tmp_path, "record", "learner-1", "live_class_attend"))
        main(self._argv(tmp_path, "streak", "learner-1"))
        database = Database(db_path=tmp_path / "main.db")
        try:
            assert database.count_activities("learner-1") == 1
            assert database.get_streak_record("learner-1").current_streak == 1
        finally:
            database.close()

    def test_engine_error_exits_nonzero(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(self._argv(tmp_path, "recalculate", "nobody"))
        assert exc_info.value.code == 1

    def test_bad_data_exits_nonzero(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(self._argv(tmp_path, "record", "learner-1", "forum_post", "--data", "nope"))
        assert exc_info.value.code == 1

    def test_learner_without_subcommand_exits_nonzero(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(self._argv(tmp_path, "learner"))
        assert exc_info.value.code == 1

    def test_config_set_does_not_open_db(self, tmp_path):
        main(self._argv(tmp_path, "config", "set", "lookback_limit", "30"))
        assert load_config(tmp_path / "config.json")["lookback_limit"] == 30
        assert not (tmp_path / "main.db").exists()

    def test_no_command_prints_help(self, tmp_path, capsys):
        main(self._argv(tmp_path))
        assert "learner-streaks" in capsys.readouterr().out
