"""Shared fixtures for logwatch tests."""

import threading
import time
from collections.abc import Callable

import pytest


class RecordingSink:
    """Alert sink that keeps every payload it receives."""

    def __init__(self):
        self.payloads: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def send(self, payload: str, destination: str) -> None:
        with self._lock:
            self.payloads.append((payload, destination))

    @property
    def count(self) -> int:
        with self._lock:
            return len(self.payloads)


def _wait_until(
    predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.01
) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll a predicate until it holds or the timeout expires."""
    return _wait_until


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()
