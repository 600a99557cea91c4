"""Loading monitoring rules from JSON or YAML files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import TypeAdapter, ValidationError

from .errors import ConfigParseError
from .models import MonitoringRule

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = Path(__file__).parent.parent / "defaults" / "monitoring-rules.json"
YAML_SUFFIXES = {".yaml", ".yml"}

_rule_list = TypeAdapter(list[MonitoringRule])


def parse_rules(
    payload: str | bytes,
    fmt: str = "json",
    source: str = "<string>",
) -> list[MonitoringRule]:
    """Parse a rule payload into validated rules.

    The payload must be an array of rule objects. Validation is all or
    nothing: one bad entry rejects the whole payload.

    Args:
        payload: Raw file content.
        fmt: ``"json"`` or ``"yaml"``.
        source: Label used in error messages.

    Returns:
        Parsed rules in file order.

    Raises:
        ConfigParseError: If the payload cannot be decoded or validated.
    """
    data: Any
    try:
        if fmt == "yaml":
            data = yaml.safe_load(payload)
        else:
            data = json.loads(payload)
    except (json.JSONDecodeError, yaml.YAMLError, UnicodeDecodeError) as e:
        raise ConfigParseError(source, str(e)) from e

    if not isinstance(data, list):
        raise ConfigParseError(source, f"expected a list of rules, got {type(data).__name__}")

    try:
        return _rule_list.validate_python(data)
    except ValidationError as e:
        raise ConfigParseError(source, str(e)) from e


def load_rules(path: str | Path) -> list[MonitoringRule]:
    """Read and parse a rule file.

    Files ending in ``.yaml`` or ``.yml`` are parsed as YAML, anything else
    as JSON.

    Raises:
        ConfigParseError: If the file cannot be read or parsed.
    """
    rules_path = Path(path)
    try:
        payload = rules_path.read_bytes()
    except OSError as e:
        raise ConfigParseError(str(rules_path), str(e)) from e

    fmt = "yaml" if rules_path.suffix.lower() in YAML_SUFFIXES else "json"
    rules = parse_rules(payload, fmt=fmt, source=str(rules_path))
    logger.debug(f"Parsed {len(rules)} rules from {rules_path}")
    return rules


def resolve_rules_path(path: str | Path | None) -> Path:
    """Return the operator-supplied rules path, or the bundled default.

    Args:
        path: Path supplied by the operator, if any.

    Returns:
        ``path`` if it exists, otherwise the default rules file shipped with
        the package.
    """
    if path is not None:
        candidate = Path(path)
        if candidate.exists():
            return candidate
        logger.warning(f"Configuration file not found: {candidate}. Using default location.")
    return DEFAULT_RULES_PATH
