"""Incremental file tailing with rotation detection.

A FileTailer follows one file from its end, polling on a fixed delay and
handing each complete new line to a callback. Rotation is detected either
by the file shrinking below the tracked offset (truncation) or by the path
now pointing at a different inode (replacement); in both cases reading
resumes from offset 0 of the current file. A truncated file that regrew
past the offset between two polls is caught by comparing the last bytes
read with what now sits just before the offset.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import replace
from pathlib import Path
from typing import BinaryIO

from .models import LineHandler, TailerState, TailerStatus

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 64 * 1024
# Bytes just before the read offset, re-checked when the file grows.
FINGERPRINT_BYTES = 16


def _signature(stat_result: os.stat_result) -> tuple[int, int]:
    return (stat_result.st_dev, stat_result.st_ino)


class FileTailer:
    """Streams lines appended to a single file.

    Each tailer owns a daemon thread. ``stop()`` joins that thread, so once
    it returns no further callbacks are made.

    Attributes:
        file_path: Path being tailed.
        on_line: Callback receiving each complete line, newline stripped.
    """

    def __init__(
        self,
        file_path: str | Path,
        on_line: LineHandler,
        poll_interval_ms: int = 100,
    ):
        """Initialize the tailer without touching the file.

        Args:
            file_path: Path of the file to follow.
            on_line: Callback invoked once per new line.
            poll_interval_ms: Delay between polls in milliseconds.
        """
        self.file_path = str(file_path)
        self.on_line = on_line
        self._path = Path(file_path)
        self._state = TailerState(file_path=self.file_path, poll_interval_ms=poll_interval_ms)
        self._handle: BinaryIO | None = None
        self._partial = b""
        self._fingerprint = b""
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._state_lock = threading.Lock()

    @property
    def state(self) -> TailerState:
        """Snapshot of the current tailer state."""
        with self._state_lock:
            return replace(self._state)

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, from_beginning: bool = False) -> None:
        """Open the file and start polling.

        Args:
            from_beginning: Read existing content too. By default only lines
                appended after this call are delivered.

        Raises:
            FileNotFoundError: If the file does not exist.
            RuntimeError: If the tailer was already started.
        """
        if self._thread is not None:
            raise RuntimeError(f"Tailer for {self.file_path} already started")

        handle = self._path.open("rb")
        try:
            stat_result = os.fstat(handle.fileno())
            offset = 0 if from_beginning else stat_result.st_size
            start = max(0, offset - FINGERPRINT_BYTES)
            handle.seek(start)
            fingerprint = handle.read(offset - start)
            handle.seek(offset)
        except OSError:
            handle.close()
            raise

        self._handle = handle
        self._fingerprint = fingerprint
        with self._state_lock:
            self._state.read_offset = offset
            self._state.signature = _signature(stat_result)
            self._state.status = TailerStatus.TAILING

        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name=f"tailer-{self._path.name}",
        )
        self._thread.start()
        logger.info(f"Started tailing {self.file_path} at offset {offset}")

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop polling and release the file handle.

        Safe to call more than once and concurrently with an in-flight poll.
        When called from the tailer's own callback the join is skipped; the
        loop exits as soon as the current callback returns.
        """
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(f"Tailer thread for {self.file_path} did not stop within {timeout}s")

    # ============================================================================
    # Polling
    # ============================================================================

    def _poll_loop(self) -> None:
        interval = self._state.poll_interval_ms / 1000.0
        try:
            while not self._stop_event.is_set():
                try:
                    self._poll_once()
                except OSError as e:
                    logger.error(f"I/O error tailing {self.file_path}: {e}")
                self._stop_event.wait(interval)
        finally:
            self._close_handle()
            with self._state_lock:
                self._state.status = TailerStatus.STOPPED
            logger.info(f"Stopped tailing {self.file_path}")

    def _poll_once(self) -> None:
        """Check for rotation, then deliver any newly appended lines."""
        try:
            path_stat = self._path.stat()
        except FileNotFoundError:
            # Rotated away and not yet recreated; keep waiting for the new file.
            logger.debug(f"Tailed file temporarily missing: {self.file_path}")
            return

        if self._handle is None:
            self._reopen()
        elif _signature(path_stat) != self._state.signature:
            logger.info(f"File rotated (replaced): {self.file_path}")
            self._mark_rotated()
            self._read_available(flush_partial=True)
            self._reopen()
        elif path_stat.st_size < self._state.read_offset:
            logger.info(
                f"File rotated (truncated): {self.file_path} "
                f"(offset {self._state.read_offset} > size {path_stat.st_size})"
            )
            self._rewind()
        elif path_stat.st_size > self._state.read_offset and not self._fingerprint_matches():
            logger.info(f"File rotated (truncated and rewritten): {self.file_path}")
            self._rewind()

        self._read_available()

    def _read_available(self, flush_partial: bool = False) -> None:
        """Read from the open handle to EOF and deliver complete lines."""
        if self._handle is None:
            return

        while not self._stop_event.is_set():
            chunk = self._handle.read(READ_CHUNK_BYTES)
            if not chunk:
                break
            self._set_offset(self._state.read_offset + len(chunk))
            self._fingerprint = (self._fingerprint + chunk)[-FINGERPRINT_BYTES:]
            data = self._partial + chunk
            *lines, self._partial = data.split(b"\n")
            for raw in lines:
                if self._stop_event.is_set():
                    return
                self._deliver(raw)

        if flush_partial and self._partial:
            partial, self._partial = self._partial, b""
            self._deliver(partial)

    def _deliver(self, raw: bytes) -> None:
        line = raw.rstrip(b"\r").decode("utf-8", errors="replace")
        try:
            self.on_line(line)
        except Exception as e:
            logger.error(f"Error processing line from {self.file_path}: {line!r}: {e}")

    def _reopen(self) -> None:
        self._close_handle()
        self._partial = b""
        self._fingerprint = b""
        try:
            handle = self._path.open("rb")
        except FileNotFoundError:
            logger.debug(f"Cannot reopen {self.file_path} yet, retrying next poll")
            return
        self._handle = handle
        with self._state_lock:
            self._state.signature = _signature(os.fstat(handle.fileno()))
            self._state.read_offset = 0
            self._state.status = TailerStatus.TAILING
        logger.debug(f"Reopened {self.file_path} from offset 0")

    def _close_handle(self) -> None:
        if self._handle is not None:
            try:
                self._handle.close()
            except OSError as e:
                logger.warning(f"Failed to close {self.file_path}: {e}")
            self._handle = None

    def _fingerprint_matches(self) -> bool:
        """Check that the bytes before the read offset are still the ones read."""
        if not self._fingerprint or self._handle is None:
            return True
        offset = self._state.read_offset
        self._handle.seek(offset - len(self._fingerprint))
        current = self._handle.read(len(self._fingerprint))
        self._handle.seek(offset)
        return current == self._fingerprint

    def _rewind(self) -> None:
        self._mark_rotated()
        self._partial = b""
        self._fingerprint = b""
        if self._handle is not None:
            self._handle.seek(0)
        self._set_offset(0, TailerStatus.TAILING)

    def _mark_rotated(self) -> None:
        with self._state_lock:
            self._state.status = TailerStatus.ROTATED

    def _set_offset(self, offset: int, status: TailerStatus | None = None) -> None:
        with self._state_lock:
            self._state.read_offset = offset
            if status is not None:
                self._state.status = status
