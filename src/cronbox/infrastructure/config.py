"""Configuration constants, .env parsing, and scheduler tunables."""

from __future__ import annotations

import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def read_env_file(keys: list[str]) -> dict[str, str]:
    """Parse .env file and return values for requested keys.

    Does NOT load into os.environ. Secrets stay out of the process
    environment so they don't leak to child processes.
    """
    env_file = Path.cwd() / ".env"
    try:
        content = env_file.read_text()
    except OSError:
        return {}

    result: dict[str, str] = {}
    wanted = set(keys)

    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        eq_idx = trimmed.find("=")
        if eq_idx == -1:
            continue
        key = trimmed[:eq_idx].strip()
        if key not in wanted:
            continue
        value = trimmed[eq_idx + 1 :].strip()
        if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]
        if value:
            result[key] = value

    return result


def env_int(name: str, default: int) -> int:
    """Read an integer env var, falling back to default when unset or unparseable."""
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


_env_config = read_env_file(["ASSISTANT_NAME"])

ASSISTANT_NAME: str = os.environ.get("ASSISTANT_NAME") or _env_config.get("ASSISTANT_NAME", "Andy")

# Absolute paths
PROJECT_ROOT: Path = Path.cwd()
STORE_DIR: Path = (PROJECT_ROOT / "store").resolve()
GROUPS_DIR: Path = (PROJECT_ROOT / "groups").resolve()
DATA_DIR: Path = (PROJECT_ROOT / "data").resolve()
MAIN_GROUP_FOLDER: str = "main"

# Scheduler
SCHEDULER_POLL_INTERVAL: float = float(env_int("SCHEDULER_POLL_INTERVAL", 60))  # seconds
TASK_TIMEOUT: float = float(env_int("TASK_TIMEOUT", 600))  # seconds
MAX_CONCURRENT_TASKS: int = max(1, env_int("MAX_CONCURRENT_TASKS", 4))

# Container
CONTAINER_IMAGE: str = os.environ.get("CONTAINER_IMAGE", "anthropic/claude-code:latest")
CONTAINER_TIMEOUT: int = env_int("CONTAINER_TIMEOUT", 300_000)  # ms, interactive runs
CONTAINER_MAX_OUTPUT_SIZE: int = env_int("CONTAINER_MAX_OUTPUT_SIZE", 10 * 1024 * 1024)  # 10MB

SECRET_KEYS: list[str] = ["ANTHROPIC_API_KEY", "ANTHROPIC_BASE_URL", "CLAUDE_CODE_OAUTH_TOKEN"]


def _resolve_timezone() -> str:
    tz = os.environ.get("TZ", "").strip()
    if not tz:
        tz_file = Path("/etc/timezone")
        try:
            if tz_file.exists():
                tz = tz_file.read_text().strip()
            else:
                # /usr/share/zoneinfo/America/New_York -> America/New_York
                parts = Path("/etc/localtime").resolve().parts
                if "zoneinfo" in parts:
                    tz = "/".join(parts[parts.index("zoneinfo") + 1 :])
        except OSError:
            tz = ""

    if not tz:
        return "UTC"

    try:
        ZoneInfo(tz)
        return tz
    except (ZoneInfoNotFoundError, ValueError):
        return "UTC"


TIMEZONE: str = _resolve_timezone()
