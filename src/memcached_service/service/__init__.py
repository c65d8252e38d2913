"""
The service package.
Manages the lifecycle of a single memcached daemon.

This package contains the MemcachedService state machine and its helper
modules, which together build the command line, apply resource limits,
launch and stop the daemon through its pid file, and probe its health.
"""
from .lifecycle import MemcachedService, default_group
from .status import HealthStatus, Result, ServiceState, Started, StartOutcome, StartTimedOut

__all__ = [
    "MemcachedService", "default_group",
    "HealthStatus", "Result", "ServiceState", "Started", "StartOutcome", "StartTimedOut",
]
