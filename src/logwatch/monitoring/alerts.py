"""Alert construction, serialization and dispatch.

AlertFactory turns a pattern match into a standardized ``Alert``, renders it
as JSON and hands it to the sink registered for the rule's destination.
Delivery is a single best-effort call: failures are logged, never retried
and never raised to the tailing loop.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from datetime import UTC, datetime
from typing import Any, Protocol, TextIO

from .errors import SinkError
from .models import Alert

logger = logging.getLogger(__name__)

ALERT_LOGGER_NAME = "logwatch.alerts"
SERIALIZATION_ERROR_PAYLOAD = json.dumps({"error": "Failed to serialize alert"})


class AlertSink(Protocol):
    """Protocol for alert destinations.

    A sink receives the serialized alert and the destination key of the
    rule that produced it.
    """

    def send(self, payload: str, destination: str) -> None:
        """Deliver one serialized alert."""
        ...


class ConsoleSink:
    """Prints alerts to a stream and records them in the module log."""

    def __init__(self, stream: TextIO | None = None):
        self._stream = stream
        self._lock = threading.Lock()

    def send(self, payload: str, destination: str) -> None:
        stream = self._stream or sys.stdout
        with self._lock:
            print(f"ALERT: {payload}", file=stream, flush=True)
        logger.info(f"Alert generated: {payload}", extra={"destination": destination})


class LogSink:
    """Writes alerts to the ``logwatch.alerts`` logger.

    LoggingManager attaches a JSONL file handler to that logger; without it
    records propagate to whatever the application configured.
    """

    def __init__(self, logger_name: str = ALERT_LOGGER_NAME):
        self._logger = logging.getLogger(logger_name)

    def send(self, payload: str, destination: str) -> None:
        self._logger.info(payload, extra={"destination": destination})


class SinkRegistry:
    """Maps destination routing keys to sinks.

    Unknown destinations fall back to the default sink, so a rule always
    has somewhere to deliver. Registration is thread-safe.
    """

    def __init__(self, default: AlertSink | None = None):
        self._default: AlertSink = default or ConsoleSink()
        self._sinks: dict[str, AlertSink] = {"console": self._default, "log": LogSink()}
        self._lock = threading.Lock()

    @property
    def default(self) -> AlertSink:
        return self._default

    def register(self, name: str, sink: AlertSink) -> None:
        """Register (or replace) the sink for a destination key."""
        with self._lock:
            self._sinks[name] = sink
        logger.debug(f"Registered alert sink '{name}'")

    def unregister(self, name: str) -> bool:
        """Remove a sink. Returns False if no sink had that name."""
        with self._lock:
            return self._sinks.pop(name, None) is not None

    def resolve(self, destination: str) -> AlertSink:
        """Return the sink for a destination, or the default sink."""
        with self._lock:
            return self._sinks.get(destination, self._default)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._sinks)


class AlertFactory:
    """Builds, serializes and dispatches alerts.

    Attributes:
        sinks: Registry used to route alerts by destination.
    """

    def __init__(self, sinks: SinkRegistry | None = None):
        self.sinks = sinks or SinkRegistry()

    def build(
        self,
        source_file: str,
        severity: str,
        pattern: str,
        line: str,
        metadata: dict[str, Any] | None = None,
    ) -> Alert:
        """Create an alert stamped with the current UTC time."""
        return Alert(
            timestamp=datetime.now(UTC).isoformat(),
            severity=severity,
            source_file=source_file,
            matched_pattern=pattern,
            log_line=line,
            metadata=dict(metadata or {}),
        )

    def serialize(self, alert: Alert) -> str:
        """Render an alert as JSON.

        Never raises: when the alert cannot be encoded (for example because
        metadata holds a non-JSON value) a minimal error payload is returned
        instead so the pipeline keeps running.
        """
        try:
            return json.dumps(alert.to_dict())
        except (TypeError, ValueError) as e:
            logger.error(f"Error serializing alert from {alert.source_file}: {e}")
            return SERIALIZATION_ERROR_PAYLOAD

    def send(self, serialized_alert: str, destination: str) -> bool:
        """Deliver a serialized alert to its destination.

        Returns:
            True if the sink accepted the alert, False if delivery failed.
        """
        sink = self.sinks.resolve(destination)
        try:
            sink.send(serialized_alert, destination)
        except Exception as e:
            error = SinkError(f"Delivery to '{destination}' failed: {e}")
            logger.error(
                str(error),
                extra={"destination": destination, "error_type": type(e).__name__},
            )
            return False
        return True

    def emit(
        self,
        source_file: str,
        severity: str,
        pattern: str,
        line: str,
        destination: str,
    ) -> Alert:
        """Build, serialize and send an alert in one step."""
        alert = self.build(source_file, severity, pattern, line)
        self.send(self.serialize(alert), destination)
        return alert
