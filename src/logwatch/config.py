"""Runtime settings for logwatch.

Settings come from dataclass defaults, optionally overridden by a YAML
settings file and then by ``LOGWATCH_*`` environment variables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

ENV_OVERRIDES: dict[str, str] = {
    "rules_path": "LOGWATCH_RULES",
    "tail_poll_interval_ms": "LOGWATCH_TAIL_POLL_MS",
    "pending_check_interval_seconds": "LOGWATCH_PENDING_INTERVAL",
    "reload_debounce_ms": "LOGWATCH_RELOAD_DEBOUNCE_MS",
    "watch_timeout_seconds": "LOGWATCH_WATCH_TIMEOUT",
    "log_dir": "LOGWATCH_LOG_DIR",
    "log_level": "LOGWATCH_LOG_LEVEL",
}


@dataclass
class WatchConfig:
    """Configuration for the log watch service.

    Attributes:
        rules_path: Rule configuration file (default: monitoring-rules.json).
        tail_poll_interval_ms: Delay between tail polls (default: 100).
        pending_check_interval_seconds: Delay between pending-file sweeps (default: 5).
        reload_debounce_ms: Quiet period before reloading a changed rules file (default: 500).
        watch_timeout_seconds: Maximum block per config watch wait (default: 1).
        log_dir: Directory for logwatch's own logs (default: /tmp/logwatch_logs).
        log_level: Console log level (default: INFO).
    """

    rules_path: str = "monitoring-rules.json"
    tail_poll_interval_ms: int = 100
    pending_check_interval_seconds: float = 5.0
    reload_debounce_ms: int = 500
    watch_timeout_seconds: float = 1.0
    log_dir: str = "/tmp/logwatch_logs"
    log_level: str = "INFO"


def _coerce(name: str, raw: Any) -> Any:
    """Convert a raw value to the type of the WatchConfig field."""
    default = getattr(WatchConfig, name)
    try:
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from e
    return str(raw)


def load_settings(
    path: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> WatchConfig:
    """Build a WatchConfig from an optional YAML file and the environment.

    Args:
        path: YAML settings file. Skipped when None.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        The resolved configuration.

    Raises:
        FileNotFoundError: If ``path`` is given but does not exist.
        ValueError: If the YAML is invalid, not a mapping, has unknown keys
            or holds values of the wrong type.
    """
    environ = os.environ if environ is None else environ
    values: dict[str, Any] = {}

    if path is not None:
        settings_path = Path(path)
        if not settings_path.exists():
            raise FileNotFoundError(f"Settings file not found: {settings_path}")
        try:
            with open(settings_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse settings YAML: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Settings file must contain a mapping, got {type(data).__name__}")

        known = {f.name for f in fields(WatchConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(unknown)}")

        values.update({key: _coerce(key, value) for key, value in data.items()})
        logger.debug(f"Loaded settings from {settings_path}")

    for name, env_var in ENV_OVERRIDES.items():
        if env_var in environ:
            values[name] = _coerce(name, environ[env_var])

    return WatchConfig(**values)
