"""Tests for ConfigReloadManager and event sources."""

import json
import queue
from pathlib import Path

import pytest

from logwatch.monitoring.coordinator import MonitorCoordinator
from logwatch.monitoring.errors import WatchClosedError
from logwatch.monitoring.reload import (
    ConfigReloadManager,
    ReloadState,
    WatchdogEventSource,
    WatchEvent,
)
from logwatch.monitoring.rules import DEFAULT_RULES_PATH


class FakeEventSource:
    """In-memory event source driven by the test."""

    def __init__(self, directory: Path):
        self.directory = directory
        self.events: queue.Queue = queue.Queue()
        self.closed = False

    def push(self, event) -> None:
        self.events.put(event)

    def next_event(self, timeout: float):
        try:
            item = self.events.get(timeout=timeout)
        except queue.Empty:
            return None
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


def write_rules(path: Path, *log_files: Path, pattern: str = "level=ERROR") -> None:
    path.write_text(
        json.dumps([{"logFile": str(f), "pattern": pattern, "severity": "HIGH"} for f in log_files])
    )


@pytest.fixture
def rules_file(tmp_path: Path) -> Path:
    return tmp_path / "monitoring-rules.json"


@pytest.fixture
def sources() -> list[FakeEventSource]:
    return []


@pytest.fixture
def make_manager(coordinator: MonitorCoordinator, rules_file: Path, sources):
    managers: list[ConfigReloadManager] = []

    def factory(**kwargs) -> ConfigReloadManager:
        def source_factory(directory: Path) -> FakeEventSource:
            source = FakeEventSource(directory)
            sources.append(source)
            return source

        options = {
            "event_source_factory": source_factory,
            "debounce_ms": 20,
            "watch_timeout_seconds": 0.05,
        }
        options.update(kwargs)
        manager = ConfigReloadManager(coordinator, rules_file, **options)
        managers.append(manager)
        return manager

    yield factory
    for manager in managers:
        manager.stop()


class TestInitialLoad:
    """Tests for load()."""

    def test_load_applies_rules(
        self, make_manager, coordinator: MonitorCoordinator, rules_file: Path, tmp_path: Path
    ) -> None:
        log_a = tmp_path / "a.log"
        log_a.write_text("")
        write_rules(rules_file, log_a, tmp_path / "late.log")
        manager = make_manager()

        assert manager.load()

        assert manager.state is ReloadState.LOADED
        assert manager.rules_path == rules_file
        assert coordinator.is_tailing(str(log_a))
        assert coordinator.is_pending(str(tmp_path / "late.log"))

    def test_load_malformed_applies_nothing(
        self, make_manager, coordinator: MonitorCoordinator, rules_file: Path
    ) -> None:
        rules_file.write_text("{ not valid json")
        manager = make_manager()

        assert not manager.load()
        assert coordinator.active_rules() == {}

    def test_missing_config_uses_default(
        self, coordinator: MonitorCoordinator, tmp_path: Path
    ) -> None:
        loaded: list[Path] = []

        def loader(path: Path):
            loaded.append(path)
            return []

        manager = ConfigReloadManager(coordinator, tmp_path / "absent.json", loader=loader)

        assert manager.load()
        assert loaded == [DEFAULT_RULES_PATH]


class TestReload:
    """Tests for explicit and event-driven reloads."""

    def test_reload_malformed_keeps_active_rules(
        self,
        make_manager,
        coordinator: MonitorCoordinator,
        rules_file: Path,
        tmp_path: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        log_a = tmp_path / "a.log"
        log_a.write_text("")
        write_rules(rules_file, log_a)
        manager = make_manager()
        manager.load()
        tailer_before = coordinator._tailers[str(log_a)]

        rules_file.write_text("[{ this is not json")
        assert not manager.reload()

        assert coordinator.tailing_paths() == [str(log_a)]
        assert coordinator._tailers[str(log_a)] is tailer_before
        assert tailer_before.is_running()
        assert "Configuration reload rejected" in caplog.text

    def test_reload_removes_and_adds_rules(
        self, make_manager, coordinator: MonitorCoordinator, rules_file: Path, tmp_path: Path
    ) -> None:
        log_a = tmp_path / "a.log"
        log_b = tmp_path / "b.log"
        log_a.write_text("")
        log_b.write_text("")
        write_rules(rules_file, log_a)
        manager = make_manager()
        manager.load()

        write_rules(rules_file, log_b)
        assert manager.reload()

        assert coordinator.tailing_paths() == [str(log_b)]
        assert manager.reload_count == 1

    def test_change_event_triggers_reload(
        self,
        make_manager,
        sources,
        coordinator: MonitorCoordinator,
        rules_file: Path,
        tmp_path: Path,
        wait_until,
    ) -> None:
        log_a = tmp_path / "a.log"
        log_a.write_text("")
        write_rules(rules_file, log_a)
        manager = make_manager()
        manager.load()
        manager.start()
        assert manager.state is ReloadState.WATCHING
        assert sources[0].directory == rules_file.resolve().parent

        log_b = tmp_path / "b.log"
        log_b.write_text("")
        write_rules(rules_file, log_a, log_b)
        sources[0].push(WatchEvent(kind="modified", path=str(rules_file)))

        assert wait_until(lambda: coordinator.is_tailing(str(log_b)))
        assert wait_until(lambda: manager.state is ReloadState.WATCHING)

    def test_unrelated_events_are_ignored(
        self, make_manager, sources, rules_file: Path, tmp_path: Path, wait_until
    ) -> None:
        write_rules(rules_file)
        manager = make_manager()
        manager.load()
        manager.start()

        sources[0].push(WatchEvent(kind="modified", path=str(tmp_path / "other.json")))
        swap = tmp_path / "monitoring-rules.json.swp"
        sources[0].push(WatchEvent(kind="modified", path=str(swap)))

        assert not wait_until(lambda: manager.reload_count > 0, timeout=0.2)

    def test_burst_of_events_is_debounced(
        self, make_manager, sources, rules_file: Path, wait_until
    ) -> None:
        write_rules(rules_file)
        manager = make_manager(debounce_ms=100)
        manager.load()
        manager.start()

        for _ in range(5):
            sources[0].push(WatchEvent(kind="modified", path=str(rules_file)))

        assert wait_until(lambda: manager.reload_count == 1)
        assert not wait_until(lambda: manager.reload_count > 1, timeout=0.3)

    def test_atomic_save_via_move_triggers_reload(
        self, make_manager, sources, rules_file: Path, tmp_path: Path, wait_until
    ) -> None:
        write_rules(rules_file)
        manager = make_manager()
        manager.load()
        manager.start()

        sources[0].push(
            WatchEvent(kind="moved", path=str(tmp_path / ".rules.tmp"), dest_path=str(rules_file))
        )

        assert wait_until(lambda: manager.reload_count == 1)

    def test_deleted_config_keeps_rules(
        self,
        make_manager,
        sources,
        coordinator: MonitorCoordinator,
        rules_file: Path,
        tmp_path: Path,
        wait_until,
    ) -> None:
        log_a = tmp_path / "a.log"
        log_a.write_text("")
        write_rules(rules_file, log_a)
        manager = make_manager()
        manager.load()
        manager.start()

        rules_file.unlink()
        sources[0].push(WatchEvent(kind="deleted", path=str(rules_file)))

        assert wait_until(lambda: manager.state is ReloadState.WATCHING)
        assert not wait_until(lambda: manager.reload_count > 0, timeout=0.2)
        assert coordinator.is_tailing(str(log_a))


class TestWatchLifecycle:
    """Tests for start/stop and watch failures."""

    def test_stop_closes_source(self, make_manager, sources, rules_file: Path) -> None:
        write_rules(rules_file)
        manager = make_manager()
        manager.load()
        manager.start()

        manager.stop()

        assert sources[0].closed
        assert manager.state is ReloadState.STOPPED
        assert not manager.is_watching()

    def test_watch_loop_without_source_stops(
        self, make_manager, caplog: pytest.LogCaptureFixture
    ) -> None:
        manager = make_manager()

        manager._watch_loop()

        assert manager.state is ReloadState.STOPPED
        assert "without an event source" in caplog.text

    def test_watches_operator_directory_until_file_appears(
        self,
        make_manager,
        sources,
        coordinator: MonitorCoordinator,
        rules_file: Path,
        tmp_path: Path,
        wait_until,
    ) -> None:
        manager = make_manager()
        manager.load()
        assert manager.rules_path == DEFAULT_RULES_PATH
        manager.start()

        assert sources[0].directory == rules_file.resolve().parent

        log_a = tmp_path / "a.log"
        log_a.write_text("")
        write_rules(rules_file, log_a)
        sources[0].push(WatchEvent(kind="created", path=str(rules_file)))

        assert wait_until(lambda: coordinator.is_tailing(str(log_a)))
        assert manager.rules_path == rules_file
        assert list(coordinator.active_rules()) == [str(log_a)]

    def test_start_twice_raises(self, make_manager, rules_file: Path) -> None:
        write_rules(rules_file)
        manager = make_manager()
        manager.load()
        manager.start()

        with pytest.raises(RuntimeError, match="already watching"):
            manager.start()

    def test_watch_failure_stops_loop_but_not_tailing(
        self,
        make_manager,
        sources,
        coordinator: MonitorCoordinator,
        rules_file: Path,
        tmp_path: Path,
        wait_until,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        log_a = tmp_path / "a.log"
        log_a.write_text("")
        write_rules(rules_file, log_a)
        manager = make_manager()
        manager.load()
        manager.start()

        sources[0].push(WatchClosedError("watch key invalid"))

        assert wait_until(lambda: not manager.is_watching())
        assert manager.state is ReloadState.STOPPED
        assert sources[0].closed
        assert coordinator.is_tailing(str(log_a))
        assert "hot reload disabled" in caplog.text


class TestWatchdogEventSource:
    """Tests for the watchdog-backed event source."""

    def test_reports_file_modification(self, tmp_path: Path) -> None:
        target = tmp_path / "monitoring-rules.json"
        target.write_text("[]")
        source = WatchdogEventSource(tmp_path)
        try:
            target.write_text('[{"logFile": "a.log", "pattern": "x"}]')

            seen = None
            for _ in range(50):
                event = source.next_event(0.1)
                if event is not None and event.touches(target.name):
                    seen = event
                    break

            assert seen is not None
            assert seen.kind in {"created", "modified", "moved"}
        finally:
            source.close()

    def test_closed_source_raises(self, tmp_path: Path) -> None:
        source = WatchdogEventSource(tmp_path)
        source.close()

        with pytest.raises(WatchClosedError):
            source.next_event(0.01)

    def test_event_touches(self) -> None:
        event = WatchEvent(kind="moved", path="/etc/x/.tmp123", dest_path="/etc/x/rules.json")

        assert event.touches("rules.json")
        assert not WatchEvent(kind="modified", path="/etc/x/other.json").touches("rules.json")
