import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

log = logging.getLogger(__name__)

IDENTITY_SUFFIX = ".identity"


def identity_path(pidfile: Path) -> Path:
    """Returns the sidecar file that records who the pid in `pidfile` belongs to."""
    return pidfile.with_name(pidfile.name + IDENTITY_SUFFIX)


def read_pid(pidfile: Path) -> Optional[int]:
    """
    Reads the pid recorded in a pid file.

    :param pidfile: The pid file path.
    :return: The pid, or None if the file is missing or does not hold a pid.
    """
    try:
        text = pidfile.read_text().strip()
    except FileNotFoundError:
        return None
    except OSError as e:
        log.warning(f"Failed to read pid file '{pidfile}': {e}")
        return None

    try:
        pid = int(text)
    except ValueError:
        log.warning(f"Pid file '{pidfile}' is malformed: {text[:32]!r}")
        return None
    return pid if pid > 0 else None


def read_identity(pidfile: Path) -> Optional[Dict[str, Any]]:
    """Reads the identity sidecar, returning None if it is missing or unreadable."""
    path = identity_path(pidfile)
    if not path.exists():
        return None
    try:
        with path.open("r") as f:
            identity = json.load(f)
        return identity if isinstance(identity, dict) else None
    except (json.JSONDecodeError, IOError):
        return None


def _atomic_write(path: Path, content: str) -> None:
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with temp_path.open("w") as f:
            f.write(content)
        temp_path.replace(path)
    finally:
        temp_path.unlink(missing_ok=True)


def write_pid_file(pidfile: Path, pid: int, identity: Dict[str, Any]) -> None:
    """
    Atomically writes the pid file and its identity sidecar.

    The sidecar is written first so that a reader never sees a pid without it.

    :param pidfile: The pid file path.
    :param pid: The daemon pid.
    :param identity: Data used later to tell this process apart from a pid reuse.
    :raises OSError: If either file cannot be written.
    """
    pidfile.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write(identity_path(pidfile), json.dumps(identity, indent=4))
    _atomic_write(pidfile, f"{pid}\n")
    log.debug(f"Wrote pid {pid} to '{pidfile}'")


def remove_pid_files(pidfile: Path) -> None:
    """Removes the pid file and its sidecar, if present."""
    pidfile.unlink(missing_ok=True)
    identity_path(pidfile).unlink(missing_ok=True)
    log.debug(f"Cleaned up pid file '{pidfile}'.")
