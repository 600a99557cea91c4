"""Structured logging setup for logwatch.

Configures the ``logwatch`` logger with a human-readable console handler and
a rotating JSON-lines file, and the ``logwatch.alerts`` logger with a daily
JSONL file holding one record per delivered alert.
"""

import json
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path

from .monitoring.alerts import ALERT_LOGGER_NAME

ROOT_LOGGER_NAME = "logwatch"

_RESERVED_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "asctime",
        "taskName",
    ]
)


def _record_extras(record: logging.LogRecord) -> dict:
    """Collect the ``extra=`` fields attached to a record."""
    extras = {}
    for key, value in record.__dict__.items():
        if key in _RESERVED_ATTRS:
            continue
        try:
            json.dumps(value)  # Ensure serializable
            extras[key] = value
        except (TypeError, ValueError):
            extras[key] = str(value)
    return extras


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record, including extra fields."""

    def format(self, record):
        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        log_obj.update(_record_extras(record))
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_obj)


class AlertLineFormatter(logging.Formatter):
    """Writes the alert payload itself, wrapped with its destination."""

    def format(self, record):
        payload = record.getMessage()
        try:
            alert = json.loads(payload)
        except ValueError:
            alert = {"raw": payload}
        return json.dumps(
            {
                "logged_at": datetime.fromtimestamp(record.created).isoformat(),
                "destination": getattr(record, "destination", None),
                "alert": alert,
            }
        )


class LoggingManager:
    """Manages logging handlers for the logwatch process."""

    def __init__(self, log_dir: str | Path = "/tmp/logwatch_logs", log_level: str = "INFO"):
        """Initialize logging manager.

        Args:
            log_dir: Directory for log files
            log_level: Console log level
        """
        self.log_dir = Path(log_dir)
        self.log_level = getattr(logging, log_level.upper())

        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.alerts_dir = self.log_dir / "alerts"
        self.alerts_dir.mkdir(exist_ok=True)

        self._setup_main_logger()
        self._setup_alert_logger()

        # Child loggers created before setup may carry their own handlers
        for name in list(logging.Logger.manager.loggerDict.keys()):
            if name.startswith(f"{ROOT_LOGGER_NAME}.") and name != ALERT_LOGGER_NAME:
                child_logger = logging.getLogger(name)
                if isinstance(child_logger, logging.Logger):  # Skip PlaceHolders
                    child_logger.setLevel(logging.NOTSET)
                    child_logger.propagate = True
                    child_logger.handlers.clear()

    def _setup_main_logger(self):
        """Setup main logger with console and rotating JSON file handlers."""
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        logger.setLevel(logging.DEBUG)  # Let handlers filter
        logger.propagate = False
        logger.handlers.clear()

        # Console handler - human readable
        console_handler = logging.StreamHandler()
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(console_handler)

        # File handler - structured JSON
        file_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / "logwatch.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

        self.main_logger = logger

    def _setup_alert_logger(self):
        """Setup alert trail logger (JSON Lines format, daily rotation)."""
        logger = logging.getLogger(ALERT_LOGGER_NAME)
        logger.setLevel(logging.INFO)
        logger.propagate = False
        logger.handlers.clear()

        file_handler = logging.handlers.TimedRotatingFileHandler(
            self.alerts_dir / "alerts.jsonl",
            when="midnight",
            interval=1,
            backupCount=30,  # Keep 30 days
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(AlertLineFormatter())
        logger.addHandler(file_handler)

        self.alert_logger = logger

    def close(self):
        """Flush and detach every handler installed by this manager."""
        for logger in (self.main_logger, self.alert_logger):
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)
