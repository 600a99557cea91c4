"""Hot reload of the rule configuration.

ConfigReloadManager watches the directory holding the rules file, debounces
change events for that file and re-applies the parsed rule set through the
MonitorCoordinator. Filesystem events come from a WatchEventSource so the
reload state machine can be driven without a real filesystem.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .coordinator import MonitorCoordinator
from .errors import ConfigParseError, WatchClosedError
from .models import MonitoringRule
from .rules import load_rules, resolve_rules_path

logger = logging.getLogger(__name__)

RuleLoader = Callable[[Path], list[MonitoringRule]]

RELOAD_EVENT_KINDS = {"created", "modified", "deleted", "moved"}


@dataclass(frozen=True)
class WatchEvent:
    """A filesystem change observed in the watched directory.

    Attributes:
        kind: One of ``created``, ``modified``, ``deleted``, ``moved``.
        path: Path the event refers to (source path for moves).
        dest_path: Destination path for moves, otherwise None.
    """

    kind: str
    path: str
    dest_path: str | None = None

    def touches(self, file_name: str) -> bool:
        """Return True if this event concerns a file with the given name."""
        if os.path.basename(self.path) == file_name:
            return True
        return self.dest_path is not None and os.path.basename(self.dest_path) == file_name


class WatchEventSource(Protocol):
    """Source of filesystem events for one directory."""

    def next_event(self, timeout: float) -> WatchEvent | None:
        """Wait up to ``timeout`` seconds for the next event.

        Returns:
            The event, or None on timeout.

        Raises:
            WatchClosedError: If the source can no longer deliver events.
        """
        ...

    def close(self) -> None:
        """Release the underlying watch."""
        ...


class _QueueingHandler(FileSystemEventHandler):
    def __init__(self, events: queue.Queue[WatchEvent]):
        super().__init__()
        self._events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in RELOAD_EVENT_KINDS:
            return
        dest = getattr(event, "dest_path", "") or None
        self._events.put(
            WatchEvent(
                kind=event.event_type,
                path=os.fsdecode(event.src_path),
                dest_path=os.fsdecode(dest) if dest else None,
            )
        )


class WatchdogEventSource:
    """WatchEventSource backed by a watchdog Observer on one directory."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._events: queue.Queue[WatchEvent] = queue.Queue()
        self._observer = Observer()
        handler = _QueueingHandler(self._events)
        self._observer.schedule(handler, str(self.directory), recursive=False)
        self._observer.daemon = True
        self._observer.start()
        self._closed = False

    def next_event(self, timeout: float) -> WatchEvent | None:
        if self._closed:
            raise WatchClosedError(f"Watch on {self.directory} is closed")
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            if not self._observer.is_alive() or not self.directory.is_dir():
                raise WatchClosedError(f"Watch on {self.directory} is no longer valid") from None
            return None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._observer.stop()
        if self._observer.is_alive():
            self._observer.join(timeout=5.0)


class ReloadState(Enum):
    """States of the configuration reload state machine."""

    IDLE = "idle"
    LOADED = "loaded"
    WATCHING = "watching"
    CHANGE_DETECTED = "change_detected"
    DEBOUNCE = "debounce"
    RELOAD = "reload"
    STOPPED = "stopped"


class ConfigReloadManager:
    """Loads the rule configuration and keeps it in sync with the file.

    Attributes:
        coordinator: Coordinator receiving parsed rule sets.
        rules_path: Resolved path of the rules file (set by ``load()``).
        state: Current ReloadState.
    """

    def __init__(
        self,
        coordinator: MonitorCoordinator,
        config_path: str | Path | None,
        loader: RuleLoader = load_rules,
        event_source_factory: Callable[[Path], WatchEventSource] = WatchdogEventSource,
        debounce_ms: int = 500,
        watch_timeout_seconds: float = 1.0,
    ):
        """Initialize the manager.

        Args:
            coordinator: Coordinator that owns the active rules.
            config_path: Operator-supplied rules path; the bundled default is
                used when it is None or missing.
            loader: Parses a rules file, raising ConfigParseError on bad input.
            event_source_factory: Builds an event source for a directory.
            debounce_ms: Quiet period after a change before reloading.
            watch_timeout_seconds: Maximum block per event wait.
        """
        self.coordinator = coordinator
        self.config_path = config_path
        self.loader = loader
        self.event_source_factory = event_source_factory
        self.debounce_seconds = debounce_ms / 1000.0
        self.watch_timeout_seconds = watch_timeout_seconds
        self.rules_path: Path | None = None
        self.state = ReloadState.IDLE
        self.reload_count = 0
        self._source: WatchEventSource | None = None
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._reload_lock = threading.Lock()

    # ============================================================================
    # Loading
    # ============================================================================

    def load(self) -> bool:
        """Perform the initial load and apply every rule.

        Returns:
            True if the configuration parsed; False if it was malformed, in
            which case no rules are applied.
        """
        self.rules_path = resolve_rules_path(self.config_path)
        try:
            rules = self.loader(self.rules_path)
        except ConfigParseError as e:
            logger.error(f"Error loading configuration from {self.rules_path}: {e}")
            return False

        logger.info(f"Loading {len(rules)} monitoring rules from {self.rules_path}")
        self.coordinator.apply_rules(rules)
        self.state = ReloadState.LOADED
        return True

    def reload(self) -> bool:
        """Re-read the rules file and reconcile the active rule set.

        A malformed file leaves the current rules untouched. Once the
        operator's rules file exists it replaces the bundled default.

        Returns:
            True if the new rule set was applied.
        """
        if self.rules_path is None:
            return self.load()

        with self._reload_lock:
            if self.config_path is not None and Path(self.config_path).exists():
                self.rules_path = Path(self.config_path)
            previous = self.state
            self.state = ReloadState.RELOAD
            try:
                rules = self.loader(self.rules_path)
            except ConfigParseError as e:
                logger.warning(f"Configuration reload rejected, keeping current rules: {e}")
                return False
            else:
                logger.info(f"Configuration file changed, applying {len(rules)} rules")
                self.coordinator.sync_rules(rules)
                self.reload_count += 1
                return True
            finally:
                if self.is_watching():
                    self.state = ReloadState.WATCHING
                elif previous is not ReloadState.STOPPED:
                    self.state = ReloadState.LOADED
                else:
                    self.state = previous

    # ============================================================================
    # Watching
    # ============================================================================

    def start(self) -> None:
        """Begin watching the rules file's directory for changes."""
        if self._thread is not None:
            raise RuntimeError("ConfigReloadManager is already watching")
        if self.rules_path is None:
            self.rules_path = resolve_rules_path(self.config_path)

        target = self._watch_target()
        directory = target.resolve().parent
        try:
            self._source = self.event_source_factory(directory)
        except OSError as e:
            logger.error(f"Error setting up config file watcher for {directory}: {e}")
            self.state = ReloadState.STOPPED
            return

        self._stop_event.clear()
        self.state = ReloadState.WATCHING
        self._thread = threading.Thread(target=self._watch_loop, daemon=True, name="config-watcher")
        self._thread.start()
        logger.info(f"Started watching configuration file for changes: {target}")

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the watch loop and release the watch handle."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        self._close_source()
        self.state = ReloadState.STOPPED

    def is_watching(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _watch_loop(self) -> None:
        source = self._source
        if source is None:
            logger.error("Config watcher started without an event source")
            self.state = ReloadState.STOPPED
            return
        file_name = self._watch_target().name
        try:
            while not self._stop_event.is_set():
                event = source.next_event(self.watch_timeout_seconds)
                if event is None or not event.touches(file_name):
                    continue

                self.state = ReloadState.CHANGE_DETECTED
                logger.info(f"Configuration file {event.kind}: {event.path}")
                self._debounce(source, file_name)
                if self._stop_event.is_set():
                    break
                self.reload()
        except WatchClosedError as e:
            logger.critical(f"Config watcher terminated, hot reload disabled: {e}")
        except Exception as e:
            logger.critical(f"Error in config watcher, hot reload disabled: {e}")
        finally:
            self.state = ReloadState.STOPPED
            self._close_source()
            logger.info("Config watcher stopped")

    def _watch_target(self) -> Path:
        """The operator's rules path if one was given, else the loaded file."""
        if self.config_path is not None:
            return Path(self.config_path)
        if self.rules_path is None:
            self.rules_path = resolve_rules_path(None)
        return self.rules_path

    def _debounce(self, source: WatchEventSource, file_name: str) -> None:
        """Wait until no event for the file arrives for the debounce period."""
        self.state = ReloadState.DEBOUNCE
        deadline = time.monotonic() + self.debounce_seconds
        while not self._stop_event.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            event = source.next_event(min(remaining, self.watch_timeout_seconds))
            if event is not None and event.touches(file_name):
                deadline = time.monotonic() + self.debounce_seconds

    def _close_source(self) -> None:
        source, self._source = self._source, None
        if source is not None:
            try:
                source.close()
            except Exception as e:
                logger.warning(f"Error closing config watch: {e}")
