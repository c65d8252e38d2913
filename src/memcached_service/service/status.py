from enum import Enum
from dataclasses import dataclass
from typing import Optional, Union


class HealthStatus(str, Enum):
    """Result of a status query, recomputed on every call."""
    RUNNING = "running"
    BROKEN = "broken"
    NOT_RUNNING = "not running"


class ServiceState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    START_FAILED = "start failed"


@dataclass(frozen=True)
class Result:
    """What start/stop report back to the supervisor, e.g. 'starting' or 'not running'."""
    status: str
    message: str = ""
    pid: Optional[int] = None

    def __str__(self) -> str:
        return f"{self.status} ({self.message})" if self.message else self.status


@dataclass(frozen=True)
class Started:
    elapsed: float
    trials: int


@dataclass(frozen=True)
class StartTimedOut:
    elapsed: float
    trials: int


StartOutcome = Union[Started, StartTimedOut]
