"""Exception types raised by the monitoring pipeline."""

from __future__ import annotations


class LogWatchError(Exception):
    """Base class for all logwatch errors."""


class PatternError(LogWatchError):
    """Raised when a rule pattern cannot be compiled or evaluated.

    Attributes:
        pattern: The offending regular expression source.
    """

    def __init__(self, pattern: str, reason: str):
        super().__init__(f"Invalid pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class ConfigParseError(LogWatchError):
    """Raised when a rule configuration payload is malformed.

    Attributes:
        source: Where the payload came from (file path or "<string>").
    """

    def __init__(self, source: str, reason: str):
        super().__init__(f"Failed to parse rule configuration {source}: {reason}")
        self.source = source
        self.reason = reason


class SinkError(LogWatchError):
    """Raised when an alert could not be delivered to its destination."""


class WatchClosedError(LogWatchError):
    """Raised by an event source that can no longer deliver events."""
