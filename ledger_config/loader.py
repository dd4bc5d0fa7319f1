"""
Settings Loader (``ledger_config.loader``).

Responsibility
--------------
Reads the YAML settings file, applies ``LEDGER_*`` environment overrides and
parses the result into a frozen ``LedgerSettings``.

Architecture position
---------------------
**Config layer** -- no dependency on the kernel's services or models.
Consumed by the batch runner (``python -m ledger_batch``).

Invariants enforced
-------------------
* Every parse error raises ``ValueError`` naming the offending key; no
  silent fallback for a malformed value.
* ``LedgerSettings`` is immutable.

Failure modes
-------------
* Missing settings file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad value (time, UUID, level, timezone)  -> ``ValueError``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import time
from pathlib import Path
from typing import Any, Mapping
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

DEFAULTS_PATH = Path(__file__).with_name("defaults.yaml")

# env var -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "LEDGER_DATABASE_URL": ("database", "url"),
    "LEDGER_TIMEZONE": ("clock", "timezone"),
    "LEDGER_RUN_AT": ("scheduler", "run_at"),
    "LEDGER_SYSTEM_ACTOR_ID": ("actors", "system_actor_id"),
    "LEDGER_LOG_LEVEL": ("logging", "level"),
}


@dataclass(frozen=True)
class LedgerSettings:
    """Runtime settings for the ledger process."""

    database_url: str
    timezone: str = "UTC"
    run_at: time = time(0, 1)
    interval_hours: int = 24
    system_actor_id: UUID | None = None
    log_level: str = "INFO"
    echo_sql: bool = False

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level")
    return data


def _merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env(raw: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    for var, (section, key) in ENV_OVERRIDES.items():
        if var in env:
            raw = _merge(raw, {section: {key: env[var]}})
    return raw


def parse_run_at(value: Any) -> time:
    """Parse "HH:MM" into a time."""
    if isinstance(value, time):
        return value
    try:
        hours, minutes = str(value).split(":")
        return time(int(hours), int(minutes))
    except ValueError:
        raise ValueError(f"scheduler.run_at: expected HH:MM, got {value!r}") from None


def parse_settings(raw: Mapping[str, Any]) -> LedgerSettings:
    """Build LedgerSettings from a merged settings mapping."""
    database = raw.get("database") or {}
    clock = raw.get("clock") or {}
    scheduler = raw.get("scheduler") or {}
    actors = raw.get("actors") or {}
    log = raw.get("logging") or {}

    url = database.get("url")
    if not url:
        raise ValueError("database.url is required")

    timezone = str(clock.get("timezone") or "UTC")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"clock.timezone: unknown timezone {timezone!r}") from None

    actor = actors.get("system_actor_id")
    try:
        system_actor_id = UUID(str(actor)) if actor else None
    except ValueError:
        raise ValueError(f"actors.system_actor_id: not a UUID: {actor!r}") from None

    level = str(log.get("level") or "INFO").upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"logging.level: unknown level {level!r}")

    interval = int(scheduler.get("interval_hours", 24))
    if interval <= 0:
        raise ValueError("scheduler.interval_hours must be positive")

    return LedgerSettings(
        database_url=str(url),
        timezone=timezone,
        run_at=parse_run_at(scheduler.get("run_at", "00:01")),
        interval_hours=interval,
        system_actor_id=system_actor_id,
        log_level=level,
        echo_sql=bool(database.get("echo_sql", False)),
    )


def load_settings(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Load settings: packaged defaults, then ``path`` (or ``$LEDGER_CONFIG``),
    then ``LEDGER_*`` environment overrides.
    """
    env = os.environ if env is None else env
    raw = load_yaml_file(DEFAULTS_PATH)

    path = path or env.get("LEDGER_CONFIG")
    if path:
        raw = _merge(raw, load_yaml_file(Path(path)))

    return parse_settings(_apply_env(raw, env))
