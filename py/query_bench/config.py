"""Configuration for a query-bench run.

Values come from an optional TOML file (``[bench]`` table) and from command
line flags; flags win. Durations are written as strings such as ``"5m"``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

import tomllib

from .duration import ParseError, parse_duration

DEFAULTS: dict[str, Any] = {
    "prom_url": "http://localhost:9090",
    "query_file": "queries.txt",
    "range": "30d",
    "auth_token": "",
    "step": "5m",
    "interval": "5s",
    "label": "instance",
    "workers": 1,
    "sleep": "1ms",
    "query_timeout": 0,
    "check_status": False,
    "log_level": "INFO",
    "rounds": 0,
}


@dataclass(frozen=True)
class BenchConfig:
    prom_url: str
    query_file: str
    range: str
    auth_token: str
    step: timedelta
    interval: timedelta
    label: str
    workers: int
    sleep: timedelta
    query_timeout: float | None
    check_status: bool
    log_level: str
    rounds: int | None


class ConfigError(ValueError):
    """Raised when a configuration value is missing or invalid."""


def load_config(path: str | Path | None = None, overrides: Mapping[str, Any] | None = None) -> BenchConfig:
    data: dict[str, Any] = {}
    if path is not None:
        raw = _read_toml(path)
        data = raw.get("bench", {})
        if not isinstance(data, dict):
            raise ConfigError("[bench] must be a table")
        unknown = sorted(set(data) - set(DEFAULTS))
        if unknown:
            raise ConfigError(f"unknown keys in [bench]: {', '.join(unknown)}")
    if overrides:
        data.update({key: value for key, value in overrides.items() if value is not None})

    step = _require_duration(data, "step")
    if step < timedelta(seconds=1):
        raise ConfigError("step must be at least 1s")
    interval = _require_duration(data, "interval")
    if interval <= timedelta(0):
        raise ConfigError("interval must be greater than 0")
    sleep = _require_duration(data, "sleep")
    if sleep < timedelta(0):
        raise ConfigError("sleep must not be negative")

    timeout_raw = _require_number(data, "query_timeout")
    rounds_raw = _require_int(data, "rounds", minimum=0)

    return BenchConfig(
        prom_url=_require_str(data, "prom_url"),
        query_file=_require_str(data, "query_file"),
        range=_require_str(data, "range"),
        auth_token=_optional_str(data, "auth_token"),
        step=step,
        interval=interval,
        label=_require_str(data, "label"),
        workers=_require_int(data, "workers", minimum=1),
        sleep=sleep,
        query_timeout=float(timeout_raw) if timeout_raw > 0 else None,
        check_status=_require_bool(data, "check_status"),
        log_level=_require_str(data, "log_level").upper(),
        rounds=rounds_raw or None,
    )


def _read_toml(path: str | Path) -> dict[str, Any]:
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise ConfigError(f"configuration file not found: {cfg_path}")
    try:
        with cfg_path.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{cfg_path}: {exc}") from exc


def _value(data: Mapping[str, Any], key: str) -> Any:
    return data[key] if key in data else DEFAULTS[key]


def _require_str(data: Mapping[str, Any], key: str) -> str:
    value = _value(data, key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{key} must be a non-empty string")
    return value.strip()


def _optional_str(data: Mapping[str, Any], key: str) -> str:
    value = _value(data, key)
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a string")
    return value.strip()


def _require_int(data: Mapping[str, Any], key: str, *, minimum: int) -> int:
    value = _value(data, key)
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer") from exc
    if number < minimum:
        raise ConfigError(f"{key} must be >= {minimum}")
    return number


def _require_number(data: Mapping[str, Any], key: str) -> float:
    value = _value(data, key)
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number") from exc


def _require_bool(data: Mapping[str, Any], key: str) -> bool:
    value = _value(data, key)
    if isinstance(value, bool):
        return value
    raise ConfigError(f"{key} must be a boolean")


def _require_duration(data: Mapping[str, Any], key: str) -> timedelta:
    value = _value(data, key)
    if isinstance(value, timedelta):
        return value
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a duration string such as \"5m\"")
    try:
        return parse_duration(value.strip())
    except ParseError as exc:
        raise ConfigError(f"{key}: {exc}") from exc
