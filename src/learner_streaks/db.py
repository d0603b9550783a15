"""SQLite database layer for learner-streaks."""

from __future__ import annotations

import functools
import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, TypeVar

from learner_streaks.activities import (
    ActivityEvent,
    ActivityType,
    ensure_utc,
    get_activity_points,
    parse_activity_type,
    utc_now,
)
from learner_streaks.errors import RecordNotFound, StorageUnavailable
from learner_streaks.records import StreakEndReason, StreakRecord, StreakRun

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".learner-streaks" / "streaks.db"
DEFAULT_BUSY_TIMEOUT = 5.0

F = TypeVar("F", bound=Callable[..., Any])


def _storage_call(func: F) -> F:
    """Run a Database method under the connection lock.

    sqlite3 errors are re-raised as StorageUnavailable.
    """

    @functools.wraps(func)
    def wrapper(self: Database, *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            try:
                return func(self, *args, **kwargs)
            except sqlite3.Error as exc:
                logger.error("Storage call %s failed: %s", func.__name__, exc)
                raise StorageUnavailable(str(exc)) from exc

    return wrapper  # type: ignore[return-value]


def _format_ts(moment: datetime) -> str:
    """Fixed-width UTC ISO timestamp, so string order matches time order."""
    return ensure_utc(moment).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _parse_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


class Database:
    """SQLite database manager with WAL mode.

    The connection runs in autocommit mode; multi-statement writes go through
    transaction(), which takes SQLite's write lock up front.
    """

    def __init__(self, db_path: Path | None = None, busy_timeout: float = DEFAULT_BUSY_TIMEOUT) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self._lock = threading.RLock()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(
                str(self.db_path),
                timeout=busy_timeout,
                isolation_level=None,
                check_same_thread=False,
            )
        except (OSError, sqlite3.Error) as exc:
            raise StorageUnavailable(f"Cannot open database at {self.db_path}: {exc}") from exc
        self.conn.row_factory = sqlite3.Row
        try:
            self.init_db()
        except StorageUnavailable:
            self.conn.close()
            raise

    @_storage_call
    def init_db(self) -> None:
        """Create tables if they do not exist."""
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS activity_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                learner_id TEXT NOT NULL,
                activity_type TEXT NOT NULL,
                activity_data TEXT NOT NULL DEFAULT '{}',
                points INTEGER NOT NULL DEFAULT 0,
                occurred_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_activity_log_learner
                ON activity_log (learner_id, occurred_at DESC);

            CREATE TABLE IF NOT EXISTS streak_records (
                learner_id TEXT PRIMARY KEY,
                current_streak INTEGER NOT NULL DEFAULT 0,
                longest_streak INTEGER NOT NULL DEFAULT 0,
                last_activity_at TEXT,
                streak_start_date TEXT,
                total_days_active INTEGER NOT NULL DEFAULT 0,
                updated_at TEXT
            );

            CREATE TABLE IF NOT EXISTS streak_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                learner_id TEXT NOT NULL,
                start_date TEXT NOT NULL,
                end_date TEXT NOT NULL,
                duration INTEGER NOT NULL,
                reason TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_streak_history_learner
                ON streak_history (learner_id, id);

            CREATE TABLE IF NOT EXISTS learners (
                learner_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT,
                avatar TEXT
            );
        """)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run a block as one atomic write. Rolls back on any exception."""
        with self._lock:
            try:
                self.conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StorageUnavailable(f"Cannot begin transaction: {exc}") from exc
            try:
                yield
            except BaseException:
                self.conn.rollback()
                raise
            try:
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise StorageUnavailable(f"Commit failed: {exc}") from exc

    # -- activity log ---------------------------------------------------------

    @_storage_call
    def append_activity(
        self,
        learner_id: str,
        activity_type: str | ActivityType,
        activity_data: dict[str, Any] | None = None,
        occurred_at: datetime | None = None,
    ) -> ActivityEvent:
        """Append one event to the log. Raises InvalidActivityType before writing."""
        kind = parse_activity_type(activity_type)
        event = ActivityEvent(
            learner_id=learner_id,
            activity_type=kind,
            points=get_activity_points(kind),
            occurred_at=ensure_utc(occurred_at or utc_now()),
            activity_data=dict(activity_data or {}),
        )
        payload = json.dumps(event.activity_data)
        cursor = self.conn.execute(
            "INSERT INTO activity_log (learner_id, activity_type, activity_data, points, occurred_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (learner_id, kind.value, payload, event.points, _format_ts(event.occurred_at)),
        )
        event.id = cursor.lastrowid
        return event

    @_storage_call
    def get_recent_activities(self, learner_id: str, limit: int) -> list[ActivityEvent]:
        """Return up to limit events for a learner, most recent first."""
        rows = self.conn.execute(
            "SELECT * FROM activity_log WHERE learner_id = ? "
            "ORDER BY occurred_at DESC, id DESC LIMIT ?",
            (learner_id, limit),
        ).fetchall()
        return [self._event_from_row(row) for row in rows]

    @_storage_call
    def count_activities(self, learner_id: str) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) AS n FROM activity_log WHERE learner_id = ?", (learner_id,)
        ).fetchone()
        return row["n"]

    @staticmethod
    def _event_from_row(row: sqlite3.Row) -> ActivityEvent:
        return ActivityEvent(
            id=row["id"],
            learner_id=row["learner_id"],
            activity_type=ActivityType(row["activity_type"]),
            points=row["points"],
            occurred_at=_parse_ts(row["occurred_at"]),
            activity_data=json.loads(row["activity_data"]),
        )

    # -- streak records -------------------------------------------------------

    @_storage_call
    def get_streak_record(self, learner_id: str) -> StreakRecord | None:
        """Get a learner's record with its full history, or None."""
        row = self.conn.execute(
            "SELECT * FROM streak_records WHERE learner_id = ?", (learner_id,)
        ).fetchone()
        if row is None:
            return None
        record = self._record_from_row(row)
        record.streak_history = self.get_streak_history(learner_id)
        return record

    def require_streak_record(self, learner_id: str) -> StreakRecord:
        record = self.get_streak_record(learner_id)
        if record is None:
            raise RecordNotFound(learner_id)
        return record

    @_storage_call
    def save_streak_record(self, record: StreakRecord) -> None:
        """Insert or update the live fields of a record (history is append-only)."""
        self.conn.execute(
            "INSERT INTO streak_records (learner_id, current_streak, longest_streak, "
            "last_activity_at, streak_start_date, total_days_active, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(learner_id) DO UPDATE SET "
            "current_streak = excluded.current_streak, "
            "longest_streak = excluded.longest_streak, "
            "last_activity_at = excluded.last_activity_at, "
            "streak_start_date = excluded.streak_start_date, "
            "total_days_active = excluded.total_days_active, "
            "updated_at = excluded.updated_at",
            self._record_params(record),
        )

    @_storage_call
    def append_streak_run(self, learner_id: str, run: StreakRun) -> None:
        self.conn.execute(
            "INSERT INTO streak_history (learner_id, start_date, end_date, duration, reason) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                learner_id,
                run.start_date.isoformat(),
                run.end_date.isoformat(),
                run.duration,
                run.reason.value,
            ),
        )

    @_storage_call
    def get_streak_history(self, learner_id: str) -> list[StreakRun]:
        """Closed runs for a learner, oldest first."""
        rows = self.conn.execute(
            "SELECT * FROM streak_history WHERE learner_id = ? ORDER BY id", (learner_id,)
        ).fetchall()
        return [
            StreakRun(
                start_date=date.fromisoformat(row["start_date"]),
                end_date=date.fromisoformat(row["end_date"]),
                duration=row["duration"],
                reason=StreakEndReason(row["reason"]),
            )
            for row in rows
        ]

    @_storage_call
    def get_lapsed_records(self, last_active_before: datetime) -> list[StreakRecord]:
        """Records with a live streak and no activity at or after the cutoff."""
        rows = self.conn.execute(
            "SELECT * FROM streak_records "
            "WHERE current_streak > 0 AND last_activity_at < ? ORDER BY learner_id",
            (_format_ts(last_active_before),),
        ).fetchall()
        return [self._record_from_row(row) for row in rows]

    @_storage_call
    def compare_and_save_streak_record(self, expected: StreakRecord, record: StreakRecord) -> bool:
        """Save record only if the stored live streak still matches expected.

        Returns False (and writes nothing) when another writer changed the
        streak since expected was read.
        """
        last = _format_ts(expected.last_activity_at) if expected.last_activity_at else None
        cursor = self.conn.execute(
            "UPDATE streak_records SET current_streak = ?, longest_streak = ?, "
            "last_activity_at = ?, streak_start_date = ?, total_days_active = ?, updated_at = ? "
            "WHERE learner_id = ? AND current_streak = ? AND last_activity_at IS ?",
            self._record_params(record)[1:]
            + (record.learner_id, expected.current_streak, last),
        )
        return cursor.rowcount == 1

    @staticmethod
    def _record_params(record: StreakRecord) -> tuple:
        return (
            record.learner_id,
            record.current_streak,
            record.longest_streak,
            _format_ts(record.last_activity_at) if record.last_activity_at else None,
            record.streak_start_date.isoformat() if record.streak_start_date else None,
            record.total_days_active,
            _format_ts(record.updated_at) if record.updated_at else None,
        )

    @staticmethod
    def _record_from_row(row: sqlite3.Row) -> StreakRecord:
        return StreakRecord(
            learner_id=row["learner_id"],
            current_streak=row["current_streak"],
            longest_streak=row["longest_streak"],
            last_activity_at=_parse_ts(row["last_activity_at"]),
            streak_start_date=_parse_date(row["streak_start_date"]),
            total_days_active=row["total_days_active"],
            updated_at=_parse_ts(row["updated_at"]),
        )

    # -- learners and leaderboard ---------------------------------------------

    @_storage_call
    def upsert_learner(
        self, learner_id: str, name: str, email: str | None = None, avatar: str | None = None
    ) -> None:
        """Insert or update a learner's display identity."""
        self.conn.execute(
            "INSERT INTO learners (learner_id, name, email, avatar) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(learner_id) DO UPDATE SET "
            "name = excluded.name, email = excluded.email, avatar = excluded.avatar",
            (learner_id, name, email, avatar),
        )

    @_storage_call
    def get_learner(self, learner_id: str) -> dict | None:
        row = self.conn.execute(
            "SELECT * FROM learners WHERE learner_id = ?", (learner_id,)
        ).fetchone()
        return dict(row) if row else None

    @_storage_call
    def get_top_streak_records(self, limit: int) -> list[dict]:
        """Top records by current then longest streak, joined with learner identity."""
        rows = self.conn.execute(
            "SELECT s.learner_id, l.name AS learner_name, l.email AS learner_email, "
            "l.avatar AS learner_avatar, s.current_streak, s.longest_streak, "
            "s.total_days_active "
            "FROM streak_records s LEFT JOIN learners l ON l.learner_id = s.learner_id "
            "ORDER BY s.current_streak DESC, s.longest_streak DESC, s.learner_id ASC "
            "LIMIT ?",
            (limit,),
        ).fetchall()
        return [dict(row) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self.conn.close()
