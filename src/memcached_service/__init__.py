"""
memcached-service: runs a memcached instance as a supervised service.

The package starts memcached with validated parameters, tracks it through a
pid file, verifies it with a live set/get probe and stops it cleanly.
"""

from .config import ServiceConfig, load_service_file
from .service import HealthStatus, MemcachedService, Result, ServiceState
from .errors import (
    ConfigValidationError,
    LaunchError,
    ResourceLimitError,
    ServiceError,
    StartTimeoutError,
    TerminateError,
)

__version__ = "1.0.0"

__all__ = [
    "ServiceConfig", "load_service_file",
    "MemcachedService", "HealthStatus", "Result", "ServiceState",
    "ServiceError", "ConfigValidationError", "LaunchError", "ResourceLimitError",
    "StartTimeoutError", "TerminateError",
]
