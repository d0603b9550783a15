"""Streak leaderboard entries for learner-streaks.

Pure functions for shaping and ranking leaderboard rows. The rows come from
Database.get_top_streak_records, which joins records with learner identity.
"""
from __future__ import annotations


def build_entry(row: dict) -> dict:
    """Construct a leaderboard entry from a joined record/learner row.

    Learners with no identity row keep learner_name None.
    """
    return {
        "learner_id": row["learner_id"],
        "learner_name": row.get("learner_name"),
        "learner_email": row.get("learner_email"),
        "learner_avatar": row.get("learner_avatar"),
        "current_streak": int(row.get("current_streak", 0)),
        "longest_streak": int(row.get("longest_streak", 0)),
        "total_days_active": int(row.get("total_days_active", 0)),
    }


def rank_entries(entries: list[dict]) -> list[dict]:
    """Sort entries by current_streak descending. Adds 'rank' key (1-based).

    Tie-break: longest_streak desc, then learner_id asc.
    """
    sorted_entries = sorted(
        entries,
        key=lambda e: (
            -e.get("current_streak", 0),
            -e.get("longest_streak", 0),
            e.get("learner_id", ""),
        ),
    )
    for i, entry in enumerate(sorted_entries):
        entry["rank"] = i + 1
    return sorted_entries


def top_entries(rows: list[dict], limit: int) -> list[dict]:
    """Build, rank, and cut rows down to the top limit entries."""
    if limit < 1:
        return []
    return rank_entries([build_entry(row) for row in rows])[:limit]
