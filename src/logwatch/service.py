"""LogWatchService - wires the monitoring pipeline together.

The service builds the coordinator and reload manager from a WatchConfig,
starts them in dependency order and stops them in reverse.
"""

import logging

from .config import WatchConfig
from .monitoring.alerts import AlertFactory, SinkRegistry
from .monitoring.coordinator import MonitorCoordinator
from .monitoring.reload import ConfigReloadManager


class LogWatchService:
    """
    Process-level owner of the monitoring pipeline.

    Start order: pending sweep, initial rule load, config watch. Stop order
    is the reverse, so no reload can race with tailer shutdown.
    """

    def __init__(self, config: WatchConfig, sinks: SinkRegistry | None = None, **reload_options):
        """
        Initialize the service.

        Args:
            config: Resolved settings
            sinks: Sink registry for alert destinations (console/log by default)
            **reload_options: Extra keyword arguments for ConfigReloadManager
        """
        self.config = config
        self.coordinator = MonitorCoordinator(
            alert_factory=AlertFactory(sinks),
            poll_interval_ms=config.tail_poll_interval_ms,
            pending_check_interval_seconds=config.pending_check_interval_seconds,
        )
        self.reload_manager = ConfigReloadManager(
            self.coordinator,
            config.rules_path,
            debounce_ms=config.reload_debounce_ms,
            watch_timeout_seconds=config.watch_timeout_seconds,
            **reload_options,
        )
        self._running = False
        self._logger = logging.getLogger(__name__)

    def start(self) -> None:
        """
        Start monitoring.

        Raises:
            RuntimeError: If the service is already running
        """
        if self._running:
            raise RuntimeError("LogWatchService is already running")

        self._logger.info("Starting LogWatchService...")
        self.coordinator.start()
        if not self.reload_manager.load():
            self._logger.warning(
                "Initial rule configuration could not be loaded; waiting for a valid file"
            )
        self.reload_manager.start()
        self._running = True
        self._logger.info(
            f"LogWatchService started ({len(self.coordinator.active_rules())} rules, "
            f"{self.coordinator.pending_count()} pending)"
        )

    def stop(self) -> None:
        """Stop watching the configuration and all tailers."""
        if not self._running:
            return
        self._logger.info("Stopping LogWatchService...")
        self._running = False
        self.reload_manager.stop()
        self.coordinator.shutdown()
        self._logger.info("LogWatchService stopped")

    def is_running(self) -> bool:
        return self._running

    def __enter__(self) -> "LogWatchService":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
