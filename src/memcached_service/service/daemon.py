import os
import shlex
import psutil
import logging
import subprocess
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple
from memcached_service import settings
from memcached_service.log import guardian
from memcached_service.service import persistence
from memcached_service.service.command import render_command
from memcached_service.service.limits import LimitValue
from memcached_service.errors import LaunchError, ResourceLimitError, TerminateError

log = logging.getLogger(__name__)


#* --- Process Status ---
def _created_at(proc: psutil.Process, recorded: Any) -> bool:
    """Compares the live process start time against the one recorded at launch."""
    try:
        return abs(proc.create_time() - float(recorded)) <= settings.PID_IDENTITY_TOLERANCE
    except (TypeError, ValueError):
        return False
    except psutil.AccessDenied:
        return True


def _looks_like_memcached(proc: psutil.Process) -> bool:
    """Fallback identity check for pid files without a usable sidecar."""
    try:
        if proc.name() == settings.BINARY_NAME:
            return True
        cmdline = proc.cmdline()
    except psutil.AccessDenied:
        return True  # exists, but cannot be told apart
    # A script is run as '<interpreter> <path>', so the path may be second.
    return any(Path(arg).name == settings.BINARY_NAME for arg in cmdline[:2])


def find_process(pidfile: Path) -> Optional[psutil.Process]:
    """
    Looks up the process recorded in a pid file.

    The identity sidecar written at launch decides whether the pid still
    belongs to the daemon. Without one (or with a sidecar left over from
    another pid) the process must at least be a memcached.

    :param pidfile: The pid file path.
    :return: The process if it is running, not a zombie, and still the one that
             was launched; otherwise None.
    """
    pid = persistence.read_pid(pidfile)
    if pid is None:
        return None

    try:
        proc = psutil.Process(pid)
        if proc.status() == psutil.STATUS_ZOMBIE:
            return None
    except psutil.NoSuchProcess:
        return None
    except psutil.AccessDenied:
        pass  # owned by another user, but it exists

    identity = persistence.read_identity(pidfile) or {}
    try:
        if identity.get("pid") == pid and identity.get("create_time") is not None:
            matches = _created_at(proc, identity["create_time"])
        else:
            matches = _looks_like_memcached(proc)
    except psutil.NoSuchProcess:
        return None
    if not matches:
        log.warning(f"PID {pid} from '{pidfile}' now belongs to an unrelated process.")
        return None
    return proc


def is_alive(pidfile: Path) -> bool:
    """True if the pid file names a live process that is still the one launched."""
    return find_process(pidfile) is not None


#* --- Process Creation ---
def _check_binary(argv: Sequence[str]) -> Path:
    """Validates that the executable named by argv[0] exists and can be run."""
    try:
        binary = Path(shlex.split(argv[0])[0])
    except (ValueError, IndexError):
        raise LaunchError(f"Cannot determine the executable from {list(argv[:1])!r}") from None
    if not binary.is_file():
        raise LaunchError(f"Binary '{binary}' not found")
    if not os.access(binary, os.X_OK):
        raise LaunchError(f"Binary '{binary}' is not executable")
    return binary


def _open_output(path: Optional[Path], handles: List[Any]) -> Any:
    if path is None:
        return subprocess.DEVNULL
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = path.open("ab")
    handles.append(handle)
    return handle


def _kill_spawned(proc: subprocess.Popen) -> None:
    """Kills a child that was spawned but could not be recorded."""
    try:
        proc.kill()
        proc.wait(timeout=settings.FORCEFUL_KILL_TIMEOUT)
    except ProcessLookupError:
        pass
    except subprocess.TimeoutExpired:
        log.error(f"Spawned process {proc.pid} did not exit after SIGKILL.")


def launch(
    argv: Sequence[str],
    pidfile: Path,
    stdout: Optional[Path] = None,
    stderr: Optional[Path] = None,
    preexec_hook: Optional[Callable[[], None]] = None,
    ubic_log: Optional[Path] = None,
    limits: Sequence[Tuple[str, LimitValue]] = (),
) -> int:
    """
    Starts the daemon detached from the caller's session and records its pid.

    The command line is exec'd by the shell, so the recorded pid is the
    daemon's own. On return the pid file names a live process; on any failure
    an exception is raised and nothing is left running.

    :param argv: Argument vector, binary first (see `command.build_argv`).
    :param pidfile: Where to record the pid.
    :param stdout: File that receives the daemon's stdout (appended), or None to discard.
    :param stderr: File that receives the daemon's stderr (appended), or None to discard.
    :param preexec_hook: Callable run in the child right before exec.
    :param ubic_log: Optional supervisor log for lifecycle records.
    :param limits: The (name, value) pairs the hook applies, used to describe its failure.
    :return: The daemon pid.
    :raises LaunchError: If the binary is missing, the daemon dies at once, or
                         the pid file cannot be written.
    :raises ResourceLimitError: If the pre-exec hook fails in the child.
    """
    if not argv:
        raise LaunchError("Empty argument vector")
    _check_binary(argv)

    running = find_process(pidfile)
    if running is not None:
        raise LaunchError(f"Pid file '{pidfile}' belongs to running process {running.pid}")
    if pidfile.exists() or persistence.identity_path(pidfile).exists():
        log.info(f"Removing stale pid file '{pidfile}'.")
        persistence.remove_pid_files(pidfile)

    command = render_command(argv)
    log.info(f"Starting daemon: {command}")
    guardian.record(ubic_log, f"starting daemon: {command}")

    handles: List[Any] = []
    try:
        out = _open_output(stdout, handles)
        err = out if stderr == stdout else _open_output(stderr, handles)
        proc = subprocess.Popen(
            f"exec {command}",
            shell=True,
            stdin=subprocess.DEVNULL,
            stdout=out,
            stderr=err,
            cwd="/",
            close_fds=True,
            start_new_session=True,
            preexec_fn=preexec_hook,
        )
    except subprocess.SubprocessError as e:
        guardian.record(ubic_log, f"failed to apply resource limits: {e}", logging.ERROR)
        described = ", ".join(f"{name}={value}" for name, value in limits) or "resource limits"
        raise ResourceLimitError(
            ", ".join(name for name, _ in limits) or "ulimit",
            dict(limits),
            f"pre-exec hook failed: {e}",
            message=f"Failed to set {described} ulimit: pre-exec hook failed: {e}",
        ) from e
    except OSError as e:
        guardian.record(ubic_log, f"failed to start daemon: {e}", logging.ERROR)
        raise LaunchError(f"Failed to start '{command}': {e}") from e
    finally:
        for handle in handles:
            handle.close()

    try:
        returncode = proc.wait(timeout=settings.LAUNCH_GRACE_PERIOD)
    except subprocess.TimeoutExpired:
        pass
    else:
        where = f"; see '{stderr}'" if stderr else ""
        guardian.record(ubic_log, f"daemon exited immediately with code {returncode}", logging.ERROR)
        raise LaunchError(f"Daemon exited immediately with code {returncode}{where}")

    try:
        identity = {
            "pid": proc.pid,
            "create_time": psutil.Process(proc.pid).create_time(),
            "command": command,
        }
        persistence.write_pid_file(pidfile, proc.pid, identity)
    except (OSError, psutil.Error) as e:
        log.critical(f"Failed to record daemon PID {proc.pid} in '{pidfile}': {e}", exc_info=True)
        _kill_spawned(proc)
        persistence.remove_pid_files(pidfile)
        guardian.record(ubic_log, f"failed to write pid file, killed {proc.pid}", logging.ERROR)
        raise LaunchError(f"Could not write pid file '{pidfile}': {e}") from e

    log.info(f"Daemon started successfully with PID: {proc.pid}")
    guardian.record(ubic_log, f"daemon started with pid {proc.pid}")
    return proc.pid


#* --- Process Termination ---
def terminate(
    pidfile: Path,
    ubic_log: Optional[Path] = None,
    graceful_timeout: Optional[float] = None,
    kill_timeout: Optional[float] = None,
) -> bool:
    """
    Stops the daemon recorded in a pid file: SIGTERM, then SIGKILL if needed.

    Safe to call when nothing is running; a stale pid file is just removed.

    :param pidfile: The pid file path.
    :param ubic_log: Optional supervisor log for lifecycle records.
    :param graceful_timeout: Seconds to wait after SIGTERM.
    :param kill_timeout: Seconds to wait after SIGKILL.
    :return: True if a live process was stopped, False if none was running.
    :raises TerminateError: If the process survives SIGKILL or cannot be signalled.
    """
    graceful_timeout = settings.GRACEFUL_SHUTDOWN_TIMEOUT if graceful_timeout is None else graceful_timeout
    kill_timeout = settings.FORCEFUL_KILL_TIMEOUT if kill_timeout is None else kill_timeout

    proc = find_process(pidfile)
    if proc is None:
        log.info(f"No running process found for '{pidfile}'.")
        persistence.remove_pid_files(pidfile)
        return False

    pid = proc.pid
    log.debug(f"Sending SIGTERM to PID {pid}")
    guardian.record(ubic_log, f"sending SIGTERM to {pid}")
    try:
        proc.terminate()
        _, alive = psutil.wait_procs([proc], timeout=graceful_timeout)
        if alive:
            log.warning(f"Process {pid} did not terminate gracefully. Forcing shutdown...")
            guardian.record(ubic_log, f"sending SIGKILL to {pid}", logging.WARNING)
            proc.kill()
            _, alive = psutil.wait_procs(alive, timeout=kill_timeout)
    except psutil.NoSuchProcess:
        alive = []
    except psutil.AccessDenied as e:
        raise TerminateError(pid, f"permission denied: {e}") from e

    if alive:
        guardian.record(ubic_log, f"process {pid} survived SIGKILL", logging.ERROR)
        raise TerminateError(pid, f"still alive {graceful_timeout + kill_timeout}s after SIGTERM")

    persistence.remove_pid_files(pidfile)
    log.info(f"Process {pid} stopped.")
    guardian.record(ubic_log, f"daemon {pid} stopped")
    return True
