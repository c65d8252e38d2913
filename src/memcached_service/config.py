import yaml
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from memcached_service import settings
from memcached_service.errors import ConfigValidationError
from memcached_service.service.limits import UNLIMITED, LimitValue, resolve_resource

log = logging.getLogger(__name__)

PathLike = Union[str, Path]

ACCEPTED_PARAMS = frozenset({
    "binary", "port", "pidfile", "maxsize", "verbose", "max_connections",
    "logfile", "ubic_log", "user", "group", "ulimit", "other_argv",
})


@dataclass(frozen=True)
class ServiceConfig:
    """
    Validated parameters of a single memcached service.

    Build it with `ServiceConfig.from_params`, which checks every field and
    reports all violations together. Direct construction skips validation and
    is meant for tests and callers that already hold checked values.
    """
    port: int
    pidfile: Path
    binary: Path = settings.DEFAULT_BINARY
    maxsize: int = settings.DEFAULT_MAXSIZE
    verbose: Optional[int] = None
    max_connections: Optional[int] = None
    logfile: Optional[Path] = None
    ubic_log: Optional[Path] = None
    user: str = settings.DEFAULT_USER
    group: Union[str, Tuple[str, ...], None] = None
    ulimit: Tuple[Tuple[str, LimitValue], ...] = ()
    other_argv: Optional[str] = None

    @property
    def limits(self) -> Dict[str, LimitValue]:
        """The configured resource limits as a name -> value mapping."""
        return dict(self.ulimit)

    @classmethod
    def from_params(cls, params: Mapping[str, Any], pid_dir: Optional[PathLike] = None) -> "ServiceConfig":
        """
        Validates a raw parameter mapping and builds the config from it.

        :param params: Parameters as read from a service file.
        :param pid_dir: Directory for '<port>.pid' when 'pidfile' is not given.
        :return: The validated ServiceConfig.
        :raises ConfigValidationError: Listing every violated constraint.
        """
        errors: List[str] = []

        unknown = sorted(str(key) for key in params if key not in ACCEPTED_PARAMS)
        if unknown:
            errors.append(f"unknown parameters: {', '.join(unknown)}")

        if params.get("port") is None:
            errors.append("'port' is required")
        port = _check_int(params, "port", errors, minimum=1, maximum=65535)
        maxsize = _check_int(params, "maxsize", errors, default=settings.DEFAULT_MAXSIZE)
        verbose = _check_int(params, "verbose", errors, maximum=2)
        max_connections = _check_int(params, "max_connections", errors, minimum=1)

        binary = _check_path(params, "binary", errors) or settings.DEFAULT_BINARY
        if binary.name != settings.BINARY_NAME or binary.parent == Path("."):
            errors.append(f"'binary' must point to a '{settings.BINARY_NAME}' executable, got '{binary}'")

        pidfile = _resolve_pidfile(params, port, pid_dir, errors)
        logfile = _check_path(params, "logfile", errors)
        ubic_log = _check_path(params, "ubic_log", errors)

        user = _check_str(params, "user", errors) or settings.DEFAULT_USER
        group = _check_group(params, errors)
        other_argv = _check_str(params, "other_argv", errors, allow_empty=True)
        ulimit = _check_ulimit(params, errors)

        if errors:
            log.debug(f"Rejected service parameters: {errors}")
            raise ConfigValidationError(errors)

        return cls(
            port=port,
            pidfile=pidfile,
            binary=binary,
            maxsize=maxsize,
            verbose=verbose,
            max_connections=max_connections,
            logfile=logfile,
            ubic_log=ubic_log,
            user=user,
            group=group,
            ulimit=ulimit,
            other_argv=other_argv,
        )


def load_service_file(path: PathLike, pid_dir: Optional[PathLike] = None) -> ServiceConfig:
    """
    Reads a YAML service definition and validates it.

    :param path: The service file.
    :param pid_dir: Passed through to `ServiceConfig.from_params`.
    :raises ConfigValidationError: If the file is unreadable, not a mapping, or invalid.
    """
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text())
    except OSError as e:
        raise ConfigValidationError([f"cannot read service file '{path}': {e}"]) from e
    except yaml.YAMLError as e:
        raise ConfigValidationError([f"service file '{path}' is not valid YAML: {e}"]) from e

    if not isinstance(data, dict):
        raise ConfigValidationError([f"service file '{path}' must contain a mapping of parameters"])
    log.debug(f"Loaded service definition from {path}")
    return ServiceConfig.from_params(data, pid_dir=pid_dir)


#* --- Field validators ---
def _check_int(params: Mapping[str, Any], key: str, errors: List[str], default: Optional[int] = None,
               minimum: int = 0, maximum: Optional[int] = None) -> Optional[int]:
    value = params.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not (isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit())):
        errors.append(f"'{key}' must be an integer, got {value!r}")
        return default

    number = int(value)
    if number < minimum or (maximum is not None and number > maximum):
        upper = f"..{maximum}" if maximum is not None else " or greater"
        errors.append(f"'{key}' must be {minimum}{upper}, got {number}")
        return default
    return number


def _check_str(params: Mapping[str, Any], key: str, errors: List[str], allow_empty: bool = False) -> Optional[str]:
    value = params.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or (not allow_empty and not value.strip()):
        errors.append(f"'{key}' must be a non-empty string, got {value!r}")
        return None
    return value


def _check_group(params: Mapping[str, Any], errors: List[str]) -> Union[str, Tuple[str, ...], None]:
    value = params.get("group")
    if not isinstance(value, (list, tuple)):
        return _check_str(params, "group", errors)
    if not value or not all(isinstance(g, str) and g.strip() for g in value):
        errors.append(f"'group' must be a group name or a non-empty list of group names, got {value!r}")
        return None
    return tuple(value)


def _check_path(params: Mapping[str, Any], key: str, errors: List[str]) -> Optional[Path]:
    value = params.get(key)
    if value is None:
        return None
    if not isinstance(value, (str, Path)) or not str(value).strip():
        errors.append(f"'{key}' must be a path, got {value!r}")
        return None
    return Path(value)


def _resolve_pidfile(params: Mapping[str, Any], port: Optional[int], pid_dir: Optional[PathLike],
                     errors: List[str]) -> Optional[Path]:
    pidfile = _check_path(params, "pidfile", errors)
    if pidfile is not None:
        if not pidfile.is_absolute():
            errors.append(f"'pidfile' must be an absolute path, got '{pidfile}'")
        return pidfile

    if params.get("pidfile") is not None:
        return None  # already reported as malformed
    if pid_dir is None:
        errors.append("'pidfile' is not defined; define it or configure a pid directory (MEMCACHED_PID_DIR)")
        return None
    if not Path(pid_dir).is_absolute():
        errors.append(f"pid directory must be an absolute path, got '{pid_dir}'")
        return None
    if port is None:
        return None
    return Path(pid_dir) / f"{port}.pid"


def _check_ulimit(params: Mapping[str, Any], errors: List[str]) -> Tuple[Tuple[str, LimitValue], ...]:
    value = params.get("ulimit")
    if value is None:
        return ()
    if not isinstance(value, Mapping):
        errors.append(f"'ulimit' must be a mapping of limit names to values, got {value!r}")
        return ()

    limits = []
    for name, limit in value.items():
        if not isinstance(name, str) or resolve_resource(name) is None:
            errors.append(f"'ulimit' has unknown resource {name!r}")
            continue
        if isinstance(limit, str):
            valid = limit.strip().lower() == UNLIMITED or limit.strip().isdigit()
        else:
            valid = isinstance(limit, int) and not isinstance(limit, bool) and limit >= 0
        if not valid:
            errors.append(f"'ulimit' value for {name} must be a non-negative integer or 'unlimited', got {limit!r}")
            continue
        limits.append((name, limit))
    return tuple(limits)
