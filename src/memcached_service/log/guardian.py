"""
Per-service supervisor log ('ubic_log').

Lifecycle records of a service (launch command, pid, stop signals) go to a
file of their own, apart from memcached's stdout/stderr log and from the
console output.
"""
import logging
from pathlib import Path
from typing import Optional
from .setup import GUARDIAN_LOGGER_PREFIX

GUARDIAN_FORMAT = "[%(asctime)s] %(levelname)s %(message)s"


def get_service_logger(path: Path) -> logging.Logger:
    """
    Returns the logger writing to the given supervisor log file.

    :param path: The supervisor log path from the service configuration.
    :return: A non-propagating logger with a single file handler.
    """
    name = GUARDIAN_LOGGER_PREFIX + str(path).replace(".", "_")
    logger = logging.getLogger(name)
    if not logger.handlers:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(GUARDIAN_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
    return logger


def record(path: Optional[Path], message: str, level: int = logging.INFO) -> None:
    """Appends a record to the supervisor log, if one is configured."""
    if path is None:
        return
    get_service_logger(path).log(level, message)
