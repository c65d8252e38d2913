"""
Logging module for memcached-service.
This module provides the console logging setup and the per-service supervisor log.
"""

from .setup import setup_logging
from .guardian import get_service_logger

__all__ = ["setup_logging", "get_service_logger"]
