"""Case-insensitive regular expression matching for log lines."""

from __future__ import annotations

import logging
import re
from functools import lru_cache

from .errors import PatternError

logger = logging.getLogger(__name__)


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise PatternError(pattern, str(e)) from e


class PatternMatcher:
    """Evaluates rule patterns against log lines.

    Patterns are always compiled with ``re.IGNORECASE`` so that severity
    tokens such as ``WARN`` and ``warn`` match identically. Compiled
    patterns are cached across calls.

    Example:
        >>> matcher = PatternMatcher()
        >>> matcher.matches("level=ERROR boom", "level=error")
        True
    """

    def compile(self, pattern: str) -> re.Pattern[str]:
        """Compile a pattern.

        Args:
            pattern: Regular expression source.

        Returns:
            The compiled, case-insensitive pattern.

        Raises:
            PatternError: If the pattern is not a valid regular expression.
        """
        return _compile(pattern)

    def is_valid(self, pattern: str) -> bool:
        """Return True if the pattern compiles."""
        try:
            self.compile(pattern)
        except PatternError:
            return False
        return True

    def matches(self, line: str, pattern: str) -> bool:
        """Check whether the pattern occurs anywhere in the line.

        Raises:
            PatternError: If the pattern is not a valid regular expression.
        """
        return self.compile(pattern).search(line) is not None

    def extract_groups(self, line: str, pattern: str) -> list[str | None]:
        """Extract the whole match followed by each captured group.

        Args:
            line: Log line to search.
            pattern: Regular expression source.

        Returns:
            ``[match, group1, group2, ...]``, or an empty list when the line
            does not match. Groups that did not participate are None.

        Raises:
            PatternError: If the pattern is not a valid regular expression.
        """
        match = self.compile(pattern).search(line)
        if match is None:
            return []
        return [match.group(0), *match.groups()]
