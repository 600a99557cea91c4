"""Registry of monitoring targets whose files do not exist yet.

Services often create their log file some time after start-up. Rather than
failing such rules, the coordinator parks them here; a background sweep
checks for the files on a fixed delay and promotes entries whose file has
appeared, keeping the registered line callback.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from .models import LineHandler, PendingEntry

logger = logging.getLogger(__name__)

PromoteCallback = Callable[[PendingEntry], bool]


class PendingFileRegistry:
    """Thread-safe map of file path to pending entry.

    The registry never calls out while holding its lock; promotion hands
    each ready entry to ``promote`` which is expected to claim it with
    ``take()`` and start tailing.

    Attributes:
        check_interval_seconds: Delay between promotion sweeps.
    """

    def __init__(
        self,
        promote: PromoteCallback,
        check_interval_seconds: float = 5.0,
    ):
        """Initialize the registry.

        Args:
            promote: Called for each entry whose file now exists. Returns True
                if the entry was promoted.
            check_interval_seconds: Delay between promotion sweeps.
        """
        self._promote = promote
        self.check_interval_seconds = check_interval_seconds
        self._entries: dict[str, PendingEntry] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def add(self, file_path: str, on_line: LineHandler) -> bool:
        """Park a callback until its file appears.

        Returns:
            True if an entry was added, False if the path was already pending.
        """
        with self._lock:
            if file_path in self._entries:
                return False
            self._entries[file_path] = PendingEntry(file_path=file_path, on_line=on_line)
        logger.warning(
            f"Log file does not exist yet: {file_path}. "
            "Will start monitoring when the file is created."
        )
        return True

    def requeue(self, entry: PendingEntry) -> bool:
        """Put back an entry whose promotion failed, keeping its registration time."""
        with self._lock:
            if entry.file_path in self._entries:
                return False
            self._entries[entry.file_path] = entry
            return True

    def remove(self, file_path: str) -> bool:
        """Drop a pending entry. Returns False if the path was not pending."""
        with self._lock:
            return self._entries.pop(file_path, None) is not None

    def take(self, file_path: str, entry: PendingEntry) -> bool:
        """Remove ``entry`` only if it is still the one registered for the path."""
        with self._lock:
            if self._entries.get(file_path) is not entry:
                return False
            del self._entries[file_path]
            return True

    def is_pending(self, file_path: str) -> bool:
        with self._lock:
            return file_path in self._entries

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def paths(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def promote_ready_entries(self) -> list[str]:
        """Promote every pending entry whose file now exists.

        Returns:
            Paths that were promoted during this sweep.
        """
        with self._lock:
            snapshot = list(self._entries.values())

        promoted: list[str] = []
        for entry in snapshot:
            if not Path(entry.file_path).exists():
                continue
            logger.debug(f"Pending file now exists: {entry.file_path}. Starting monitoring...")
            try:
                if self._promote(entry):
                    promoted.append(entry.file_path)
            except Exception as e:
                logger.error(f"Failed to promote pending file {entry.file_path}: {e}")
        return promoted

    # ============================================================================
    # Background sweep
    # ============================================================================

    def start(self) -> None:
        """Start the fixed-delay promotion sweep on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._sweep_loop,
            daemon=True,
            name="pending-file-checker",
        )
        self._thread.start()
        logger.info(f"Started pending file checker (interval: {self.check_interval_seconds}s)")

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the sweep thread and wait for it to exit."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.check_interval_seconds):
            if self.count():
                self.promote_ready_entries()
