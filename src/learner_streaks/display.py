"""Rich terminal display for learner-streaks."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

# Streak length -> flame color
_STREAK_COLORS: list[tuple[int, str]] = [
    (30, "orange_red1"),
    (14, "gold1"),
    (7, "dark_orange3"),
    (1, "yellow"),
]


def streak_color(days: int) -> str:
    """Color for a streak length; grey when there is no live streak."""
    for threshold, color in _STREAK_COLORS:
        if days >= threshold:
            return color
    return "grey50"


def format_days(n: int) -> str:
    """'1 day', '12 days', '1,024 days'."""
    return f"{n:,} day" if n == 1 else f"{n:,} days"


def print_streak(data: dict) -> None:
    """Print a learner's streak record.

    data is StreakRecord.to_dict() or StreakSnapshot.to_dict(), optionally
    with an at_risk flag.
    """
    current = data.get("current_streak", 0)
    color = streak_color(current)

    lines: list[str] = []
    lines.append("")
    lines.append(f"  [bold {color}]\U0001f525 {format_days(current)}[/]")
    if data.get("streak_start_date"):
        lines.append(f"  Since {data['streak_start_date']}")
    lines.append("")
    lines.append(f"  Longest streak:  {format_days(data.get('longest_streak', 0))}")
    lines.append(f"  Days active:     {data.get('total_days_active', 0):,}")
    lines.append(f"  Last activity:   {data.get('last_activity_at') or 'never'}")
    if "points" in data:
        lines.append(f"  Points earned:   +{data['points']}")
    if data.get("at_risk"):
        lines.append("")
        lines.append("  [yellow]No activity yet today, streak at risk[/]")

    history = data.get("streak_history", [])
    if history:
        lines.append("")
        lines.append("  [bold]Past Streaks:[/]")
        for run in history[-5:][::-1]:
            lines.append(
                f"  \u2022 {format_days(run['duration'])} "
                f"({run['start_date']} \u2192 {run['end_date']}, {run['reason']})"
            )
    lines.append("")

    panel = Panel(
        "\n".join(lines),
        title=f"[bold]STREAK \u2022 {data.get('learner_id', '?')}[/]",
        box=box.ROUNDED,
        border_style=color,
        width=56,
    )
    console.print(panel)


def print_leaderboard(entries: list[dict], highlight_learner: str | None = None) -> None:
    """Print ranked leaderboard entries as a table."""
    if not entries:
        console.print("[grey50]No streaks recorded yet.[/]")
        return

    table = Table(
        title="Streak Leaderboard",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold",
    )
    table.add_column("#", justify="right", width=3)
    table.add_column("Learner", min_width=16)
    table.add_column("Current", justify="right")
    table.add_column("Longest", justify="right")
    table.add_column("Days Active", justify="right")

    for entry in entries:
        name = entry.get("learner_name") or entry["learner_id"]
        if entry["learner_id"] == highlight_learner:
            name = f"[bold cyan]{name} (you)[/]"
        current = entry.get("current_streak", 0)
        table.add_row(
            str(entry.get("rank", "")),
            name,
            f"[{streak_color(current)}]{current}[/]",
            str(entry.get("longest_streak", 0)),
            f"{entry.get('total_days_active', 0):,}",
        )

    console.print(table)


def print_sweep_result(closed: int) -> None:
    """Print maintenance sweep summary."""
    panel = Panel(
        f"\n  Streaks closed out: [bold]{closed}[/]\n",
        title="[bold]Sweep Complete[/]",
        box=box.ROUNDED,
        border_style="green",
        width=50,
    )
    console.print(panel)


def print_activity_points(points: dict[str, int]) -> None:
    """Print the points table."""
    table = Table(title="Activity Points", box=box.ROUNDED, header_style="bold")
    table.add_column("Activity")
    table.add_column("Points", justify="right")
    for activity_type, value in points.items():
        table.add_row(activity_type, str(value))
    console.print(table)


def print_learner(learner: dict) -> None:
    email = f" <{learner['email']}>" if learner.get("email") else ""
    console.print(f"[green]Registered[/] {learner['learner_id']}: {learner['name']}{email}")


def print_settings(settings: dict) -> None:
    table = Table(title="Settings", box=box.ROUNDED, header_style="bold")
    table.add_column("Key")
    table.add_column("Value")
    for key, value in settings.items():
        table.add_row(key, str(value))
    console.print(table)


def print_error(message: str) -> None:
    console.print(f"[red]{message}[/]")
