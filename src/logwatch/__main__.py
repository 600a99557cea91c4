"""Command-line entry point for logwatch.

Usage:
    logwatch --rules /etc/logwatch/monitoring-rules.json
    python -m logwatch --settings settings.yaml --log-level DEBUG
"""

import argparse
import signal
import sys
import threading

from .config import load_settings
from .logging_manager import LoggingManager
from .service import LogWatchService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logwatch",
        description="Tail log files and emit alerts for lines matching configured patterns.",
    )
    parser.add_argument("--rules", help="Rule configuration file (JSON or YAML)")
    parser.add_argument("--settings", help="YAML settings file")
    parser.add_argument("--log-level", help="Console log level (e.g. DEBUG, INFO)")
    parser.add_argument("--log-dir", help="Directory for logwatch's own logs")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the service until SIGINT or SIGTERM."""
    args = build_parser().parse_args(argv)

    try:
        config = load_settings(args.settings)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    if args.rules:
        config.rules_path = args.rules
    if args.log_level:
        config.log_level = args.log_level
    if args.log_dir:
        config.log_dir = args.log_dir

    try:
        logging_manager = LoggingManager(config.log_dir, config.log_level)
    except (AttributeError, OSError) as e:
        print(f"Error configuring logging: {e}", file=sys.stderr)
        return 1

    shutdown = threading.Event()

    def handle_shutdown(signum, frame):
        logging_manager.main_logger.info("Shutdown signal received.")
        shutdown.set()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    service = LogWatchService(config)
    try:
        service.start()
    except Exception as e:
        logging_manager.main_logger.critical(f"Error starting logwatch: {e}")
        return 1

    try:
        while not shutdown.wait(1.0):
            pass
    finally:
        service.stop()
        logging_manager.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
