"""MCP server for learner-streaks.

Exposes streak operations as MCP tools for the host application.
Run via: python3 -m learner_streaks.mcp_server

The maintenance sweep is not a tool; schedule
`learner-streaks sweep` instead.
"""
from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

from learner_streaks.activities import utc_now
from learner_streaks.errors import StreakError
from learner_streaks.records import is_at_risk
from learner_streaks.service import StreakService


def record_activity_tool(
    service: StreakService,
    learner_id: str,
    activity_type: str,
    activity_data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    try:
        return service.record_activity(learner_id, activity_type, activity_data).to_dict()
    except StreakError as exc:
        return {"error": str(exc)}


def get_streak_tool(service: StreakService, learner_id: str) -> dict[str, Any]:
    try:
        record = service.get_streak(learner_id)
    except StreakError as exc:
        return {"error": str(exc)}
    result = record.to_dict()
    result["at_risk"] = is_at_risk(record, utc_now())
    return result


def get_leaderboard_tool(service: StreakService, limit: int | None = None) -> dict[str, Any]:
    try:
        entries = service.get_leaderboard(limit)
    except StreakError as exc:
        return {"error": str(exc)}
    return {"entries": entries, "count": len(entries)}


def create_server(service: StreakService) -> FastMCP:
    """Build a FastMCP server whose tools all run against service."""
    mcp = FastMCP(name="learner-streaks")

    @mcp.tool()
    def record_activity(
        learner_id: str, activity_type: str, activity_data: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Log a learning activity and return the learner's updated streak.

        activity_type: course_progress, assignment_submit, live_class_attend,
                       replay_watch, quiz_complete or forum_post.
        activity_data: free-form payload stored with the event.
        """
        return record_activity_tool(service, learner_id, activity_type, activity_data)

    @mcp.tool()
    def get_streak(learner_id: str) -> dict[str, Any]:
        """Get a learner's current and longest streak, active days, and past streaks."""
        return get_streak_tool(service, learner_id)

    @mcp.tool()
    def get_leaderboard(limit: int = service.settings.leaderboard_limit) -> dict[str, Any]:
        """Get the learners with the highest current streaks."""
        return get_leaderboard_tool(service, limit)

    @mcp.tool()
    def get_activity_points() -> dict[str, int]:
        """Get the points awarded for each activity type."""
        return service.activity_points()

    return mcp


def main() -> None:
    from learner_streaks.cli import setup_logging
    from learner_streaks.config import load_settings
    from learner_streaks.db import Database

    settings = load_settings()
    setup_logging(settings.log_level)
    db = Database(settings.db_path, busy_timeout=settings.busy_timeout)
    try:
        create_server(StreakService(db, settings)).run(transport=settings.mcp_transport)
    finally:
        db.close()


if __name__ == "__main__":
    main()
