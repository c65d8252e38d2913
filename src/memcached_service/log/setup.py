import sys
import logging
from pathlib import Path
from typing import Optional
from memcached_service import settings

GUARDIAN_LOGGER_PREFIX = "memcached_service.ubic_log."


class GuardianLogFilter(logging.Filter):
    """
    Keeps per-service supervisor log records out of the console handlers.
    Those loggers do not propagate; this guards against a misconfigured one.
    """
    def filter(self, record):
        return not record.name.startswith(GUARDIAN_LOGGER_PREFIX)


class MainFormatter(logging.Formatter):
    """The console format used by every memcached-service process."""

    def __init__(self) -> None:
        super().__init__('%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s')


def setup_logging(console_level: int = logging.INFO, log_path: Optional[Path] = None) -> None:
    """
    Configures the root logger for the console.
    This sets up a stdout handler and, optionally, a file handler, clearing
    any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param log_path: File receiving all records at DEBUG level; defaults to settings.CONSOLE_LOG_PATH.
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    console_handler.addFilter(GuardianLogFilter())
    root_logger.addHandler(console_handler)

    # --- File Handler (conditional) ---
    log_path = log_path or settings.CONSOLE_LOG_PATH
    if log_path:
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(MainFormatter())
            file_handler.addFilter(GuardianLogFilter())
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.error(f"Failed to initialize file logging handler at '{log_path}': {e}")
