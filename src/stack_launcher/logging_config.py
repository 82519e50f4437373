"""
Centralized logging configuration for the launcher session.

setup_logging installs two handlers on the root logger:
- Console output on stdout
- An append-only session log file, one line per event

Both use the same line format::

    [2026-10-16T09:15:02.117+00:00] Starting database (background)
    [2026-10-16T09:15:04.530+00:00] ERROR: Startup failed: ...
"""

import logging
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Thread-safe lock for logging configuration
_config_lock = threading.Lock()
_MODULE_LOGGER = logging.getLogger(__name__)
_UNKNOWN_LOGGER_NAME = "<unknown>"

ERROR_PREFIX = "ERROR: "


class SessionLogFormatter(logging.Formatter):
    """ISO-8601 timestamped lines, ``ERROR:``-prefixed at ERROR and above."""

    def __init__(self) -> None:
        super().__init__("%(message)s")

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:  # noqa: N802
        return datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds")

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        prefix = ERROR_PREFIX if record.levelno >= logging.ERROR else ""
        return f"[{self.formatTime(record)}] {prefix}{message}"


def _close_handlers(logger: logging.Logger, logger_name: Optional[str] = None) -> None:
    """Close all handlers for a logger, logging any errors."""
    for handler in list(logger.handlers):
        try:
            handler.close()
        except OSError as e:
            safe_name = logger_name if logger_name else _UNKNOWN_LOGGER_NAME
            _MODULE_LOGGER.debug("Handler close failed for logger '%s': %s", safe_name, e)


def _reset_all_handlers(root_logger: logging.Logger) -> None:
    _close_handlers(root_logger)
    root_logger.handlers = []


def _build_console_handler() -> logging.Handler:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(SessionLogFormatter())
    console_handler.setLevel(logging.INFO)
    return console_handler


def _build_file_handler(log_path: Path) -> logging.Handler:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setFormatter(SessionLogFormatter())
    file_handler.setLevel(logging.INFO)
    return file_handler


def _suppress_noisy_third_parties() -> None:
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("psutil").setLevel(logging.WARNING)


def setup_logging(log_path: Optional[Path] = None, *, console: bool = True) -> None:
    """Configure logging for the launcher session.

    Args:
        log_path: Session log file, opened in append mode. ``None`` skips file output.
        console: Whether to echo log lines on stdout.
    """

    with _config_lock:
        root_logger = logging.getLogger()
        _reset_all_handlers(root_logger)

        if console:
            root_logger.addHandler(_build_console_handler())
        if log_path is not None:
            root_logger.addHandler(_build_file_handler(Path(log_path)))

        root_logger.setLevel(logging.INFO)
        _suppress_noisy_third_parties()
