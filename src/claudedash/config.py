"""Configuration loader — reads optional YAML config and merges with defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

CONFIG_PATH = Path("~/.config/claudedash/config.yaml")

DAY_BOUNDARIES = ("utc", "local")

DEFAULTS = {
    "log_dir": "~/.claude/projects",
    "port": 8787,
    "day_boundary": "utc",
    "scan_workers": 4,
    "query_timeout": 30.0,
    "first_message_length": 100,
}


@dataclass
class DashConfig:
    log_dir: Path
    port: int
    day_boundary: str
    scan_workers: int
    query_timeout: float | None
    first_message_length: int


def load_config(config_path: Path | None = None) -> DashConfig:
    """Load config from ~/.config/claudedash/config.yaml, merged with defaults.

    Expand ~ in paths. If no config file exists, return defaults (don't error).
    Raises ValueError for an unknown day_boundary.
    """
    if config_path is None:
        config_path = CONFIG_PATH

    config_path = config_path.expanduser()

    merged = dict(DEFAULTS)

    if config_path.is_file():
        with open(config_path) as f:
            user_config = yaml.safe_load(f)
        if isinstance(user_config, dict):
            for key in DEFAULTS:
                if key in user_config:
                    merged[key] = user_config[key]

    day_boundary = str(merged["day_boundary"]).lower()
    if day_boundary not in DAY_BOUNDARIES:
        raise ValueError(
            f"day_boundary must be one of {DAY_BOUNDARIES}, got {merged['day_boundary']!r}"
        )

    # 0 or null means wait for the in-flight computation indefinitely
    timeout = merged["query_timeout"]
    query_timeout = float(timeout) if timeout else None

    return DashConfig(
        log_dir=Path(merged["log_dir"]).expanduser(),
        port=int(merged["port"]),
        day_boundary=day_boundary,
        scan_workers=max(1, int(merged["scan_workers"])),
        query_timeout=query_timeout,
        first_message_length=int(merged["first_message_length"]),
    )
