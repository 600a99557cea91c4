"""Data models for the log monitoring pipeline.

This module defines the structures passed between components: monitoring
rules loaded from configuration, alerts produced on a match, per-file tailer
state and pending-file entries.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

LineHandler = Callable[[str], None]


class MonitoringRule(BaseModel):
    """A single file-to-pattern monitoring rule.

    Rules are immutable once loaded and keyed by ``file_path``. The wire
    format uses camelCase ``logFile``; both spellings are accepted.

    Attributes:
        file_path: Path of the file to tail.
        pattern: Regular expression evaluated against each new line.
        severity: Severity label copied onto every alert.
        destination: Routing key selecting the alert sink.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    file_path: str = Field(alias="logFile", min_length=1)
    pattern: str = Field(min_length=1)
    severity: str = "INFO"
    destination: str = "console"

    @field_validator("file_path", "pattern")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


@dataclass
class Alert:
    """Standardized alert record produced for every pattern match.

    Attributes:
        timestamp: ISO 8601 timestamp (UTC) when the alert was built.
        severity: Severity of the rule that matched.
        source_file: File the matching line was read from.
        matched_pattern: Pattern source that matched.
        log_line: The matching line, without its newline.
        metadata: Open-ended extra fields, empty by default.
    """

    timestamp: str
    severity: str
    source_file: str
    matched_pattern: str
    log_line: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation with camelCase keys."""
        return {
            "timestamp": self.timestamp,
            "severity": self.severity,
            "sourceFile": self.source_file,
            "matchedPattern": self.matched_pattern,
            "logLine": self.log_line,
            "metadata": dict(self.metadata),
        }


class TailerStatus(Enum):
    """Lifecycle of a FileTailer.

    Attributes:
        STARTING: Opening the file and positioning the read offset.
        TAILING: Polling for appended content.
        ROTATED: Rotation detected; reopening from offset 0.
        STOPPED: Polling thread has exited.
    """

    STARTING = "starting"
    TAILING = "tailing"
    ROTATED = "rotated"
    STOPPED = "stopped"


@dataclass
class TailerState:
    """Read position and rotation signature for one tailed file.

    Attributes:
        file_path: Path being tailed.
        read_offset: Byte offset of the next unread byte.
        signature: ``(st_dev, st_ino)`` of the open file, or None before open.
        poll_interval_ms: Delay between polls in milliseconds.
        status: Current lifecycle status.
    """

    file_path: str
    read_offset: int = 0
    signature: tuple[int, int] | None = None
    poll_interval_ms: int = 100
    status: TailerStatus = TailerStatus.STARTING


@dataclass
class PendingEntry:
    """A rule callback waiting for its file to be created."""

    file_path: str
    on_line: LineHandler
    registered_at: datetime = field(default_factory=lambda: datetime.now(UTC))
