"""Tests for LogWatchService and the command-line entry point."""

import json
import queue
from pathlib import Path

import pytest

from logwatch.__main__ import build_parser, main
from logwatch.config import WatchConfig
from logwatch.monitoring.alerts import SinkRegistry
from logwatch.service import LogWatchService


class IdleEventSource:
    def __init__(self, directory: Path):
        self.directory = directory
        self._events: queue.Queue = queue.Queue()
        self.closed = False

    def next_event(self, timeout: float):
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def service_config(tmp_path: Path) -> WatchConfig:
    return WatchConfig(
        rules_path=str(tmp_path / "monitoring-rules.json"),
        tail_poll_interval_ms=20,
        pending_check_interval_seconds=0.05,
        reload_debounce_ms=20,
        watch_timeout_seconds=0.05,
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def service(service_config: WatchConfig, recording_sink):
    svc = LogWatchService(
        service_config,
        sinks=SinkRegistry(default=recording_sink),
        event_source_factory=IdleEventSource,
    )
    yield svc
    svc.stop()


class TestLogWatchService:
    """Tests for the service lifecycle."""

    def test_start_applies_rules_and_alerts(
        self, service: LogWatchService, service_config: WatchConfig, tmp_path: Path,
        recording_sink, wait_until,
    ):
        log_file = tmp_path / "a.log"
        Path(service_config.rules_path).write_text(
            json.dumps([{"logFile": str(log_file), "pattern": "level=ERROR", "severity": "HIGH"}])
        )

        service.start()
        assert service.is_running()
        assert service.coordinator.is_pending(str(log_file))

        log_file.write_text("")
        with log_file.open("a") as f:
            f.write("level=ERROR boom\n")

        assert wait_until(lambda: recording_sink.count == 1)
        assert json.loads(recording_sink.payloads[0][0])["logLine"] == "level=ERROR boom"

    def test_start_twice_raises(self, service: LogWatchService, service_config: WatchConfig):
        Path(service_config.rules_path).write_text("[]")
        service.start()

        with pytest.raises(RuntimeError, match="already running"):
            service.start()

    def test_malformed_initial_config_still_starts(
        self, service: LogWatchService, service_config: WatchConfig
    ):
        Path(service_config.rules_path).write_text("not json")

        service.start()

        assert service.is_running()
        assert service.coordinator.active_rules() == {}
        assert service.reload_manager.is_watching()

    def test_stop_releases_everything(
        self, service: LogWatchService, service_config: WatchConfig, tmp_path: Path
    ):
        log_file = tmp_path / "a.log"
        log_file.write_text("")
        Path(service_config.rules_path).write_text(
            json.dumps([{"logFile": str(log_file), "pattern": "x"}])
        )
        service.start()
        assert service.coordinator.is_tailing(str(log_file))

        service.stop()

        assert not service.is_running()
        assert service.coordinator.tailing_paths() == []
        assert not service.reload_manager.is_watching()

    def test_context_manager(self, service_config: WatchConfig, recording_sink):
        Path(service_config.rules_path).write_text("[]")

        with LogWatchService(
            service_config,
            sinks=SinkRegistry(default=recording_sink),
            event_source_factory=IdleEventSource,
        ) as svc:
            assert svc.is_running()

        assert not svc.is_running()


class TestCli:
    """Tests for the argument parser and startup failures."""

    def test_parser_options(self):
        args = build_parser().parse_args(
            ["--rules", "r.json", "--settings", "s.yaml",
             "--log-level", "DEBUG", "--log-dir", "/tmp/x"]
        )

        assert args.rules == "r.json"
        assert args.settings == "s.yaml"
        assert args.log_level == "DEBUG"
        assert args.log_dir == "/tmp/x"

    def test_missing_settings_file_exits_with_error(self, tmp_path: Path, capsys):
        code = main(["--settings", str(tmp_path / "missing.yaml")])

        assert code == 1
        assert "Error loading settings" in capsys.readouterr().err

    def test_invalid_log_level_exits_with_error(self, tmp_path: Path, capsys):
        code = main(["--log-level", "LOUD", "--log-dir", str(tmp_path / "logs")])

        assert code == 1
        assert "Error configuring logging" in capsys.readouterr().err
