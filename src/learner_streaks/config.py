"""Configuration file management for learner-streaks.

Reads and writes ~/.learner-streaks/config.json. Every key is optional;
missing keys fall back to the Settings defaults.
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from learner_streaks.db import DEFAULT_BUSY_TIMEOUT, DEFAULT_DB_PATH

DEFAULT_CONFIG_PATH: Path = Path.home() / ".learner-streaks" / "config.json"

DEFAULT_LOOKBACK_LIMIT = 365
DEFAULT_LEADERBOARD_LIMIT = 10
MCP_TRANSPORTS = ("stdio", "sse", "streamable-http")


@dataclass
class Settings:
    db_path: Path = DEFAULT_DB_PATH
    # Most recent events read per recompute. Days older than the window drop
    # out of total_days_active. Once one day's events fill the window,
    # current_streak reads 1 with no broken entry written to history.
    lookback_limit: int = DEFAULT_LOOKBACK_LIMIT
    leaderboard_limit: int = DEFAULT_LEADERBOARD_LIMIT
    busy_timeout: float = DEFAULT_BUSY_TIMEOUT  # seconds
    log_level: str = "WARNING"
    mcp_transport: str = "stdio"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["db_path"] = str(self.db_path)
        return data


def load_config(config_path: Path | None = None) -> dict:
    """Load config from JSON file. Returns {} if file missing or invalid."""
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict, config_path: Path | None = None) -> None:
    """Write config dict to JSON file. Creates parent dirs if needed."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def _coerce(key: str, raw: object) -> object:
    """Convert a raw config value to the type of the matching Settings field."""
    if key == "db_path":
        return Path(str(raw)).expanduser()
    if key in ("lookback_limit", "leaderboard_limit"):
        value = int(raw)
        if value < 1:
            raise ValueError(f"{key} must be at least 1")
        return value
    if key == "busy_timeout":
        value = float(raw)
        if value < 0:
            raise ValueError("busy_timeout must not be negative")
        return value
    if key == "log_level":
        return str(raw).upper()
    if key == "mcp_transport":
        if raw not in MCP_TRANSPORTS:
            raise ValueError(f"mcp_transport must be one of: {', '.join(MCP_TRANSPORTS)}")
        return raw
    raise KeyError(key)


def load_settings(config_path: Path | None = None, **overrides: object) -> Settings:
    """Build Settings from the config file, then apply non-None overrides.

    Unknown or malformed keys in the file are ignored.
    """
    known = {f.name for f in fields(Settings)}
    values: dict[str, object] = {}
    for key, raw in load_config(config_path).items():
        if key not in known:
            continue
        try:
            values[key] = _coerce(key, raw)
        except (TypeError, ValueError):
            continue
    for key, raw in overrides.items():
        if raw is not None:
            values[key] = _coerce(key, raw)
    return Settings(**values)


def set_config_value(key: str, raw: str, config_path: Path | None = None) -> object:
    """Validate and persist one setting. Returns the stored value.

    Raises KeyError for unknown keys and ValueError for bad values.
    """
    value = _coerce(key, raw)
    config = load_config(config_path)
    config[key] = str(value) if isinstance(value, Path) else value
    save_config(config, config_path)
    return value
