"""Configuration management for hostdrive.

Config lives in ``~/.hostdrive/config.yaml``:

    settings: "<opaque string forwarded to the agent>"
    time_limit_ms: 3600000
    log_level: INFO

The engine never interprets ``settings``; it is handed to the agent
verbatim on every invocation.  ``time_limit_ms`` is forwarded, not enforced.
"""

import logging
from pathlib import Path

import yaml

from hostdrive.paths import config_path

DEFAULT_LOG_LEVEL = "INFO"


def _read(hc_home: Path) -> dict:
    """Read config.yaml, returning empty dict if missing."""
    cp = config_path(hc_home)
    if cp.exists():
        return yaml.safe_load(cp.read_text()) or {}
    return {}


def _write(hc_home: Path, data: dict) -> None:
    """Write config.yaml (creates parent dirs if needed)."""
    cp = config_path(hc_home)
    cp.parent.mkdir(parents=True, exist_ok=True)
    cp.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))


def get_all(hc_home: Path) -> dict:
    return _read(hc_home)


# --- Agent settings ---

def get_settings(hc_home: Path) -> str | None:
    """Return the settings string for the agent, or None if not set."""
    value = _read(hc_home).get("settings")
    return None if value is None else str(value)


def set_settings(hc_home: Path, settings: str) -> None:
    data = _read(hc_home)
    data["settings"] = settings
    _write(hc_home, data)


# --- Session time limit ---

def get_time_limit(hc_home: Path) -> int | None:
    """Return the session time limit in ms, or None if not set."""
    value = _read(hc_home).get("time_limit_ms")
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid time_limit_ms in {config_path(hc_home)}: {value!r}") from None


def set_time_limit(hc_home: Path, time_limit_ms: int) -> None:
    if time_limit_ms < 0:
        raise ValueError(f"Time limit must be non-negative, got {time_limit_ms}")
    data = _read(hc_home)
    data["time_limit_ms"] = int(time_limit_ms)
    _write(hc_home, data)


# --- Logging ---

def get_log_level(hc_home: Path) -> str:
    return str(_read(hc_home).get("log_level") or DEFAULT_LOG_LEVEL).upper()


def set_log_level(hc_home: Path, level: str) -> None:
    normalized = level.strip().upper()
    if normalized not in logging.getLevelNamesMapping():
        raise ValueError(f"Unknown log level '{level}'")
    data = _read(hc_home)
    data["log_level"] = normalized
    _write(hc_home, data)
