import os
import logging
import resource
from typing import Callable, Iterable, List, Optional, Tuple, Union
from memcached_service.errors import ResourceLimitError

log = logging.getLogger(__name__)

LimitValue = Union[int, str]
UNLIMITED = "unlimited"


def resolve_resource(name: str) -> Optional[int]:
    """
    Maps a limit name to its `resource` constant.

    Accepts the full constant name ('RLIMIT_NOFILE') as well as the short
    forms used by ulimit-style configs ('NOFILE', 'nofile').

    :param name: The limit name from the service configuration.
    :return: The resource constant, or None if this platform has no such limit.
    """
    key = name.strip().upper()
    if not key.startswith("RLIMIT_"):
        key = f"RLIMIT_{key}"
    value = getattr(resource, key, None)
    return value if isinstance(value, int) else None


def to_rlim(value: LimitValue) -> int:
    """Converts a configured limit value to the integer `setrlimit` expects."""
    if isinstance(value, str) and value.strip().lower() == UNLIMITED:
        return resource.RLIM_INFINITY
    if isinstance(value, bool):
        raise TypeError("boolean is not a limit value")
    return int(value)


def _exceeds_hard_limit(value: int, hard: int) -> bool:
    if hard == resource.RLIM_INFINITY:
        return False
    return value == resource.RLIM_INFINITY or value > hard


def check_limits(limits: Iterable[Tuple[str, LimitValue]]) -> List[Tuple[str, int, int]]:
    """
    Resolves and sanity-checks limits in the parent, before anything is forked.

    An unprivileged process may lower its hard limits but never raise them, so
    such requests are rejected here where the error can still name the limit.

    :param limits: (name, value) pairs from the service configuration.
    :return: A list of (name, resource constant, value) triples.
    :raises ResourceLimitError: If a limit is unknown, malformed or unattainable.
    """
    privileged = os.geteuid() == 0
    resolved: List[Tuple[str, int, int]] = []
    for name, value in limits:
        res = resolve_resource(name)
        if res is None:
            raise ResourceLimitError(name, value, "unknown resource")
        try:
            rlim = to_rlim(value)
        except (TypeError, ValueError):
            raise ResourceLimitError(name, value, "not a number") from None

        _, hard = resource.getrlimit(res)
        if not privileged and _exceeds_hard_limit(rlim, hard):
            raise ResourceLimitError(name, value, f"exceeds hard limit {hard} of an unprivileged process")
        resolved.append((name, res, rlim))
    return resolved


def make_preexec_hook(limits: Iterable[Tuple[str, LimitValue]]) -> Callable[[], None]:
    """
    Builds the hook that applies limits inside the forked child, right before exec.

    Each limit is set as both the soft and the hard value. The hook must not
    log: it runs between fork and exec.

    :param limits: (name, value) pairs from the service configuration.
    :return: A zero-argument callable suitable for `subprocess.Popen(preexec_fn=...)`.
    """
    resolved = check_limits(limits)
    log.debug(f"Prepared resource limits: {', '.join(f'{n}={v}' for n, _, v in resolved)}")

    def apply_limits() -> None:
        for name, res, value in resolved:
            try:
                resource.setrlimit(res, (value, value))
            except (ValueError, OSError) as e:
                raise ResourceLimitError(name, value, str(e)) from e

    return apply_limits
