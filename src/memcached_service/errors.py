"""
Exception hierarchy for memcached-service.

Configuration and limit errors are raised before anything is spawned; launch
and terminate errors come from the daemon controller. A failed health probe is
not an error for callers: ``ProbeFailure`` never leaves the probe module.
"""
from typing import List, Optional


class ServiceError(Exception):
    """Base class for all service errors."""


class ConfigValidationError(ServiceError):
    """Raised when service parameters violate one or more constraints."""

    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__("Invalid service configuration: " + "; ".join(self.errors))


class ResourceLimitError(ServiceError):
    """Raised when a resource limit cannot be applied to the daemon."""

    def __init__(self, name: str, value: object, reason: str = "", message: Optional[str] = None) -> None:
        self.name = name
        self.value = value
        self.reason = reason
        if message is None:
            message = f"Failed to set {name}={value} ulimit"
            if reason:
                message += f": {reason}"
        super().__init__(message)


class LaunchError(ServiceError):
    """Raised when the daemon could not be spawned or recorded."""


class TerminateError(ServiceError):
    """Raised when the daemon cannot be stopped."""

    def __init__(self, pid: int, reason: str) -> None:
        self.pid = pid
        self.reason = reason
        super().__init__(f"Failed to stop process {pid}: {reason}")


class StartTimeoutError(ServiceError):
    """Raised by a synchronous start when the service never became healthy."""

    def __init__(self, elapsed: float, trials: int, message: Optional[str] = None) -> None:
        self.elapsed = elapsed
        self.trials = trials
        super().__init__(message or f"Failed to start: not running after {trials} checks ({elapsed:.2f}s)")


class ProbeFailure(ServiceError):
    """A single health probe attempt failed."""
