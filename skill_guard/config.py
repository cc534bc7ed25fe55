"""Runtime settings read from the environment and an optional .env file."""

from __future__ import annotations

import os
from pathlib import Path

from .constants import (
    AUDIT_LOG_NAME,
    BACKUPS_DIR_NAME,
    DATA_DIR_NAME,
    MAX_COMPRESSION_RATIO,
    MAX_FILES,
    MAX_TOTAL_SIZE,
)

_KEYS = [
    "SKILL_GUARD_HOME",
    "SKILL_GUARD_MAX_FILES",
    "SKILL_GUARD_MAX_SIZE",
    "SKILL_GUARD_MAX_COMPRESSION_RATIO",
    "SKILL_GUARD_LOG_FORMAT",
    "LOG_LEVEL",
]


def read_env_file(keys: list[str], cwd: Path | None = None) -> dict[str, str]:
    """Parse a .env file and return values for requested keys.

    Values are returned, not loaded into os.environ.
    """
    env_file = (cwd or Path.cwd()) / ".env"
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


def _setting(key: str, cwd: Path | None = None) -> str | None:
    return os.environ.get(key) or read_env_file(_KEYS, cwd).get(key)


def _int_setting(key: str, default: int) -> int:
    raw = _setting(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_data_dir(home: Path | None = None) -> Path:
    """Directory holding backups and the audit log.

    SKILL_GUARD_HOME wins over the home-relative default. An explicit
    ``home`` (used by tests) always wins.
    """
    if home is not None:
        return home / DATA_DIR_NAME
    override = _setting("SKILL_GUARD_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / DATA_DIR_NAME


def get_backups_dir(home: Path | None = None) -> Path:
    return get_data_dir(home) / BACKUPS_DIR_NAME


def get_audit_log_path(home: Path | None = None) -> Path:
    return get_data_dir(home) / AUDIT_LOG_NAME


def get_max_files() -> int:
    return _int_setting("SKILL_GUARD_MAX_FILES", MAX_FILES)


def get_max_size() -> int:
    return _int_setting("SKILL_GUARD_MAX_SIZE", MAX_TOTAL_SIZE)


def get_max_compression_ratio() -> int:
    return _int_setting("SKILL_GUARD_MAX_COMPRESSION_RATIO", MAX_COMPRESSION_RATIO)


def get_log_level() -> str:
    return _setting("LOG_LEVEL") or "INFO"


def get_log_format() -> str:
    """``console`` (default) or ``json``."""
    value = (_setting("SKILL_GUARD_LOG_FORMAT") or "console").lower()
    return value if value in ("console", "json") else "console"
