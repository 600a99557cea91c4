"""logwatch - near-real-time pattern alerts for tailed log files."""

from .config import WatchConfig, load_settings
from .logging_manager import LoggingManager
from .service import LogWatchService

__all__ = [
    "LogWatchService",
    "LoggingManager",
    "WatchConfig",
    "load_settings",
]

__version__ = "0.1.0"
