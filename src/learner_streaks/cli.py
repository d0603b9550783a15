"""CLI commands for learner-streaks."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from learner_streaks.activities import ActivityType, utc_now
from learner_streaks.config import load_settings, set_config_value
from learner_streaks.db import Database
from learner_streaks.display import (
    print_activity_points,
    print_error,
    print_learner,
    print_leaderboard,
    print_settings,
    print_streak,
    print_sweep_result,
)
from learner_streaks.errors import StreakError
from learner_streaks.records import is_at_risk
from learner_streaks.service import StreakService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="learner-streaks",
        description="Track daily learning streaks",
    )
    parser.add_argument("--db", default=None, help="Override database path")
    parser.add_argument("--config", default=None, help="Override config file path")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    record_p = subparsers.add_parser("record", help="Log an activity and update the streak")
    record_p.add_argument("learner", help="Learner id")
    record_p.add_argument("activity_type", choices=[t.value for t in ActivityType])
    record_p.add_argument("--data", default=None, help="Activity payload as a JSON object")

    streak_p = subparsers.add_parser("streak", help="Show a learner's streak")
    streak_p.add_argument("learner", help="Learner id")

    recalc_p = subparsers.add_parser("recalculate", help="Rebuild a streak record from the log")
    recalc_p.add_argument("learner", help="Learner id")

    lb_p = subparsers.add_parser("leaderboard", help="Show top streaks")
    lb_p.add_argument("--limit", "-n", type=int, default=None, help="Number of learners")
    lb_p.add_argument("--learner", default=None, help="Highlight this learner")

    subparsers.add_parser("sweep", help="Close out lapsed streaks (run daily)")
    subparsers.add_parser("points", help="Show points per activity type")

    learner_p = subparsers.add_parser("learner", help="Learner identity for the leaderboard")
    learner_sub = learner_p.add_subparsers(dest="learner_command")
    add_p = learner_sub.add_parser("add", help="Register or update a learner")
    add_p.add_argument("learner", help="Learner id")
    add_p.add_argument("--name", required=True)
    add_p.add_argument("--email", default=None)
    add_p.add_argument("--avatar", default=None)

    config_p = subparsers.add_parser("config", help="Show or change settings")
    config_sub = config_p.add_subparsers(dest="config_command")
    config_sub.add_parser("show", help="Show effective settings")
    set_p = config_sub.add_parser("set", help="Persist one setting")
    set_p.add_argument("key")
    set_p.add_argument("value")
    return parser


def setup_logging(level: str = "WARNING", verbose: bool = False) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def main(argv: list[str] | None = None) -> None:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    config_path = Path(args.config).expanduser() if args.config else None

    if args.command is None:
        parser.print_help()
        return
    if args.command == "config":
        if args.config_command == "set":
            result = do_config_set(args.key, args.value, config_path)
            if not result["ok"]:
                sys.exit(1)
        else:
            do_config_show(config_path, db_override=args.db)
        return

    settings = load_settings(config_path, db_path=args.db)
    setup_logging(settings.log_level, verbose=args.verbose)

    try:
        db = Database(settings.db_path, busy_timeout=settings.busy_timeout)
    except StreakError as exc:
        print_error(str(exc))
        sys.exit(1)
    service = StreakService(db, settings)

    try:
        if args.command == "record":
            result = do_record(service, args.learner, args.activity_type, data=args.data)
            if not result["ok"]:
                sys.exit(1)
        elif args.command == "streak":
            do_streak(service, args.learner)
        elif args.command == "recalculate":
            do_recalculate(service, args.learner)
        elif args.command == "leaderboard":
            do_leaderboard(service, limit=args.limit, highlight=args.learner)
        elif args.command == "sweep":
            do_sweep(service)
        elif args.command == "points":
            do_points(service)
        elif args.command == "learner":
            if args.learner_command == "add":
                do_learner_add(
                    service, args.learner, args.name, email=args.email, avatar=args.avatar
                )
            else:
                print_error("Usage: learner-streaks learner add LEARNER --name NAME")
                sys.exit(1)
    except StreakError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print_error(str(exc))
        sys.exit(1)
    finally:
        db.close()


def do_record(
    service: StreakService, learner_id: str, activity_type: str, data: str | None = None
) -> dict:
    """Log one activity and print the updated streak."""
    payload: dict = {}
    if data:
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as exc:
            print_error(f"--data is not valid JSON: {exc}")
            return {"ok": False, "reason": "bad_data"}
        if not isinstance(payload, dict):
            print_error("--data must be a JSON object")
            return {"ok": False, "reason": "bad_data"}
    snapshot = service.record_activity(learner_id, activity_type, payload)
    result = snapshot.to_dict()
    print_streak(result)
    return {"ok": True, **result}


def do_streak(service: StreakService, learner_id: str) -> dict:
    """Show a learner's streak, creating the record on first look."""
    record = service.get_streak(learner_id)
    result = record.to_dict()
    result["at_risk"] = is_at_risk(record, utc_now())
    print_streak(result)
    return {"ok": True, **result}


def do_recalculate(service: StreakService, learner_id: str) -> dict:
    record = service.recalculate_streak(learner_id)
    result = record.to_dict()
    print_streak(result)
    return {"ok": True, **result}


def do_leaderboard(
    service: StreakService, limit: int | None = None, highlight: str | None = None
) -> dict:
    """Show the top streaks."""
    entries = service.get_leaderboard(limit)
    print_leaderboard(entries, highlight_learner=highlight)
    return {"ok": True, "entries": entries, "count": len(entries)}


def do_sweep(service: StreakService) -> dict:
    """Close out lapsed streaks. Meant for a daily scheduler."""
    closed = service.run_maintenance_sweep()
    print_sweep_result(closed)
    return {"ok": True, "closed": closed}


def do_points(service: StreakService) -> dict:
    points = service.activity_points()
    print_activity_points(points)
    return {"ok": True, "points": points}


def do_learner_add(
    service: StreakService,
    learner_id: str,
    name: str,
    email: str | None = None,
    avatar: str | None = None,
) -> dict:
    learner = service.register_learner(learner_id, name, email=email, avatar=avatar)
    print_learner(learner)
    return {"ok": True, **learner}


def do_config_show(config_path: Path | None = None, db_override: str | None = None) -> dict:
    """Print the effective settings (config file plus overrides)."""
    settings = load_settings(config_path, db_path=db_override).to_dict()
    print_settings(settings)
    return {"ok": True, **settings}


def do_config_set(key: str, value: str, config_path: Path | None = None) -> dict:
    """Validate and persist one setting."""
    try:
        stored = set_config_value(key, value, config_path)
    except KeyError:
        print_error(f"Unknown setting: {key}")
        return {"ok": False, "reason": "unknown_key"}
    except ValueError as exc:
        print_error(f"Invalid value for {key}: {exc}")
        return {"ok": False, "reason": "bad_value"}
    print_settings({key: stored})
    return {"ok": True, "key": key, "value": stored}
