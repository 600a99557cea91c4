"""Rule-to-tailer coordination.

MonitorCoordinator is the single owner of the active rule map. For every
rule it either runs a FileTailer (file exists) or parks the rule in the
PendingFileRegistry (file absent), and wires each tailed line through the
PatternMatcher and AlertFactory.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Iterable
from pathlib import Path

from .alerts import AlertFactory
from .errors import PatternError
from .models import LineHandler, MonitoringRule, PendingEntry
from .pattern_matcher import PatternMatcher
from .pending import PendingFileRegistry
from .tailer import FileTailer

logger = logging.getLogger(__name__)

STATUS_TAILING = "tailing"
STATUS_PENDING = "pending"


class MonitorCoordinator:
    """Owns the lifecycle of tailers and pending entries for all rules.

    All reads and writes of the rule and tailer maps happen under one
    re-entrant lock, so the reload manager, the pending-file sweep and
    external callers can add or remove rules concurrently.

    Thread Safety:
        - All public methods are thread-safe
        - A path is either tailed or pending, never both
        - Re-applying a rule stops the old tailer before starting the new one

    Example:
        coordinator = MonitorCoordinator()
        coordinator.start()
        coordinator.apply_rule(MonitoringRule(
            file_path="/var/log/app.log",
            pattern="level=ERROR",
            severity="HIGH",
        ))
        ...
        coordinator.shutdown()
    """

    def __init__(
        self,
        matcher: PatternMatcher | None = None,
        alert_factory: AlertFactory | None = None,
        poll_interval_ms: int = 100,
        pending_check_interval_seconds: float = 5.0,
    ):
        self.matcher = matcher or PatternMatcher()
        self.alert_factory = alert_factory or AlertFactory()
        self.poll_interval_ms = poll_interval_ms
        self.pending = PendingFileRegistry(
            promote=self._promote_pending,
            check_interval_seconds=pending_check_interval_seconds,
        )
        self._rules: dict[str, MonitoringRule] = {}
        self._tailers: dict[str, FileTailer] = {}
        self._lock = threading.RLock()

    # ============================================================================
    # Lifecycle
    # ============================================================================

    def start(self) -> None:
        """Start the pending-file promotion sweep."""
        self.pending.start()

    def shutdown(self) -> None:
        """Stop every tailer, drop pending entries and forget all rules."""
        logger.info("Stopping all log file monitors...")
        self.pending.stop()
        with self._lock:
            tailers = list(self._tailers.values())
            self._tailers.clear()
            self._rules.clear()
            self.pending.clear()
        for tailer in tailers:
            tailer.stop()

    # ============================================================================
    # Rule management
    # ============================================================================

    def apply_rule(self, rule: MonitoringRule) -> str:
        """Start monitoring a file with the given rule.

        Any previous rule for the same path is replaced: its tailer is stopped
        (and joined) before the new one starts, so a line is never alerted
        twice.

        Args:
            rule: Rule to apply.

        Returns:
            ``"tailing"`` if the file exists and is being tailed, otherwise
            ``"pending"``. A path that exists but cannot be opened is also
            parked as pending and retried by the sweep.

        Raises:
            PatternError: If the rule's pattern does not compile. The previous
                rule for the path, if any, stays active.
        """
        self.matcher.compile(rule.pattern)
        file_path = rule.file_path
        handler = self._make_line_handler(rule)

        with self._lock:
            self._stop_tailer(file_path)
            self.pending.remove(file_path)
            self._rules[file_path] = rule

            if Path(file_path).exists():
                tailer = FileTailer(file_path, handler, poll_interval_ms=self.poll_interval_ms)
                try:
                    tailer.start()
                except FileNotFoundError:
                    self.pending.add(file_path, handler)
                except OSError as e:
                    logger.warning(f"Cannot open {file_path}, retrying on the pending sweep: {e}")
                    self.pending.requeue(PendingEntry(file_path=file_path, on_line=handler))
                    return STATUS_PENDING
                else:
                    self._tailers[file_path] = tailer
                    logger.info(f"Added monitoring rule for: {file_path}")
                    return STATUS_TAILING
            else:
                self.pending.add(file_path, handler)

        logger.info(
            f"Added monitoring rule for: {file_path} "
            "(file does not exist yet, will monitor when created)"
        )
        return STATUS_PENDING

    def apply_rules(self, rules: Iterable[MonitoringRule]) -> int:
        """Apply a batch of rules, isolating failures per rule.

        Returns:
            Number of rules applied successfully.
        """
        applied = 0
        for rule in rules:
            try:
                self.apply_rule(rule)
                applied += 1
            except PatternError as e:
                logger.error(f"Skipping rule for {rule.file_path}: {e}")
            except Exception as e:
                logger.error(f"Error adding monitoring rule for {rule.file_path}: {e}")
        logger.info(f"Successfully loaded {applied} monitoring rules")
        return applied

    def sync_rules(self, rules: Iterable[MonitoringRule]) -> int:
        """Make the active rule set equal to ``rules``.

        Paths no longer present are removed and changed rules are re-applied.
        A rule equal to the one already active is left alone, so its tailer
        keeps its offset and no appended line is skipped.

        Returns:
            Number of rules active from the new set.
        """
        rules = list(rules)
        per_path = Counter(rule.file_path for rule in rules)
        with self._lock:
            stale = [path for path in self._rules if path not in per_path]
            for path in stale:
                self.remove_rule(path)

            unchanged = 0
            changed: list[MonitoringRule] = []
            for rule in rules:
                path = rule.file_path
                same = per_path[path] == 1 and self._rules.get(path) == rule
                if same and self._is_monitored(path):
                    unchanged += 1
                else:
                    changed.append(rule)
            if unchanged:
                logger.debug(f"Keeping {unchanged} unchanged monitoring rules")
            return unchanged + self.apply_rules(changed)

    def remove_rule(self, file_path: str) -> bool:
        """Stop monitoring a file and forget its rule.

        Returns:
            True if a rule was registered for the path.
        """
        with self._lock:
            self._stop_tailer(file_path)
            self.pending.remove(file_path)
            existed = self._rules.pop(file_path, None) is not None
        if existed:
            logger.info(f"Removed monitoring rule for: {file_path}")
        return existed

    # ============================================================================
    # Accessors
    # ============================================================================

    def active_rules(self) -> dict[str, MonitoringRule]:
        with self._lock:
            return dict(self._rules)

    def tailing_paths(self) -> list[str]:
        with self._lock:
            return list(self._tailers)

    def is_tailing(self, file_path: str) -> bool:
        with self._lock:
            return file_path in self._tailers

    def is_pending(self, file_path: str) -> bool:
        return self.pending.is_pending(file_path)

    def pending_count(self) -> int:
        return self.pending.count()

    # ============================================================================
    # Internals
    # ============================================================================

    def _make_line_handler(self, rule: MonitoringRule) -> LineHandler:
        def handle(line: str) -> None:
            logger.debug(f"Received line from {rule.file_path}: {line}")
            if self.matcher.matches(line, rule.pattern):
                logger.info(f"Pattern '{rule.pattern}' matched in {rule.file_path}: {line}")
                self.alert_factory.emit(
                    rule.file_path,
                    rule.severity,
                    rule.pattern,
                    line,
                    rule.destination,
                )

        return handle

    def _is_monitored(self, file_path: str) -> bool:
        return file_path in self._tailers or self.pending.is_pending(file_path)

    def _stop_tailer(self, file_path: str) -> None:
        tailer = self._tailers.pop(file_path, None)
        if tailer is not None:
            tailer.stop()
            logger.info(f"Stopped monitoring: {file_path}")

    def _promote_pending(self, entry: PendingEntry) -> bool:
        """Start tailing a pending file that has just appeared.

        The whole file is read since it was created after the rule was
        registered.
        """
        with self._lock:
            if not self.pending.take(entry.file_path, entry):
                return False
            tailer = FileTailer(
                entry.file_path, entry.on_line, poll_interval_ms=self.poll_interval_ms
            )
            try:
                tailer.start(from_beginning=True)
            except FileNotFoundError:
                logger.warning(f"Pending file vanished before monitoring began: {entry.file_path}")
                self.pending.requeue(entry)
                return False
            except OSError as e:
                logger.debug(f"Pending file {entry.file_path} not readable yet: {e}")
                self.pending.requeue(entry)
                return False
            self._tailers[entry.file_path] = tailer
        logger.info(f"Monitoring started for: {entry.file_path}")
        return True
