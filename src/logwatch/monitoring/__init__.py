"""Log file monitoring pipeline.

This package tails configured files, matches new lines against per-file
rules and emits a standardized alert for every match. The rule set is hot
reloaded when its configuration file changes.

Key Components:
    - tailer: FileTailer, incremental reading with rotation detection
    - pending: PendingFileRegistry, rules waiting for their file to appear
    - pattern_matcher: case-insensitive regex evaluation
    - alerts: AlertFactory and the sink registry
    - coordinator: MonitorCoordinator, owner of the active rule map
    - reload: ConfigReloadManager and filesystem event sources
    - rules: rule file parsing

Example:
    >>> from logwatch.monitoring import ConfigReloadManager, MonitorCoordinator
    >>> coordinator = MonitorCoordinator()
    >>> coordinator.start()
    >>> reloader = ConfigReloadManager(coordinator, "monitoring-rules.json")
    >>> reloader.load()
    >>> reloader.start()
"""

from __future__ import annotations

from .alerts import AlertFactory, AlertSink, ConsoleSink, LogSink, SinkRegistry
from .coordinator import MonitorCoordinator
from .errors import ConfigParseError, LogWatchError, PatternError, SinkError, WatchClosedError
from .models import Alert, MonitoringRule, PendingEntry, TailerState, TailerStatus
from .pattern_matcher import PatternMatcher
from .pending import PendingFileRegistry
from .reload import (
    ConfigReloadManager,
    ReloadState,
    WatchdogEventSource,
    WatchEvent,
    WatchEventSource,
)
from .rules import load_rules, parse_rules, resolve_rules_path
from .tailer import FileTailer

__all__ = [
    "Alert",
    "AlertFactory",
    "AlertSink",
    "ConfigParseError",
    "ConfigReloadManager",
    "ConsoleSink",
    "FileTailer",
    "LogSink",
    "LogWatchError",
    "MonitorCoordinator",
    "MonitoringRule",
    "PatternError",
    "PatternMatcher",
    "PendingEntry",
    "PendingFileRegistry",
    "ReloadState",
    "SinkError",
    "SinkRegistry",
    "TailerState",
    "TailerStatus",
    "WatchClosedError",
    "WatchEvent",
    "WatchEventSource",
    "WatchdogEventSource",
    "load_rules",
    "parse_rules",
    "resolve_rules_path",
]
