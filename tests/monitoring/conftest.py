"""Shared fixtures for monitoring tests."""

from pathlib import Path

import pytest

from logwatch.monitoring.alerts import AlertFactory, SinkRegistry
from logwatch.monitoring.coordinator import MonitorCoordinator
from logwatch.monitoring.models import MonitoringRule


@pytest.fixture
def log_file(tmp_path: Path) -> Path:
    """Create an empty log file."""
    path = tmp_path / "app.log"
    path.write_text("")
    return path


@pytest.fixture
def alert_factory(recording_sink) -> AlertFactory:
    """AlertFactory whose default sink records payloads."""
    return AlertFactory(SinkRegistry(default=recording_sink))


@pytest.fixture
def coordinator(alert_factory: AlertFactory):
    """Coordinator with short poll intervals; shut down after the test."""
    coord = MonitorCoordinator(
        alert_factory=alert_factory,
        poll_interval_ms=20,
        pending_check_interval_seconds=0.05,
    )
    yield coord
    coord.shutdown()


@pytest.fixture
def error_rule(log_file: Path) -> MonitoringRule:
    return MonitoringRule(
        file_path=str(log_file),
        pattern="level=ERROR",
        severity="HIGH",
        destination="console",
    )
