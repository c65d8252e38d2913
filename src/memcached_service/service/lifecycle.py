import grp
import time
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Union
from memcached_service import settings
from memcached_service.service import command, daemon, limits
from memcached_service.service import probe as health_probe
from memcached_service.errors import LaunchError, ResourceLimitError, StartTimeoutError, TerminateError
from memcached_service.service.status import HealthStatus, Result, ServiceState, Started, StartOutcome, StartTimedOut

if TYPE_CHECKING:
    from memcached_service.config import ServiceConfig

log = logging.getLogger(__name__)

ProbeFunc = Callable[[str, int], bool]


def default_group() -> str:
    """Returns the platform's default group: the name of gid 0 ('root' on Linux, 'wheel' on BSD)."""
    try:
        return grp.getgrgid(0).gr_name
    except KeyError:
        return "root"


class MemcachedService:
    """
    Lifecycle of one memcached daemon, as seen by an external supervisor.

    By default `start` returns as soon as the daemon is spawned and reports
    'starting'; the supervisor confirms health by polling `status` using the
    step/trials from `timeout_options` (see `wait_until_running`). With
    `sync_start=True`, `start` does that polling itself and raises
    StartTimeoutError if the service never becomes healthy.
    """

    def __init__(
        self,
        config: "ServiceConfig",
        sync_start: bool = False,
        probe: Optional[ProbeFunc] = None,
        probe_host: Optional[str] = None,
    ) -> None:
        """
        :param config: The validated service configuration.
        :param sync_start: Block in `start` until the service is healthy.
        :param probe: Health check callable taking (host, port); defaults to the memcached probe.
        :param probe_host: Host to probe; defaults to settings.PROBE_HOST.
        """
        self.config = config
        self.sync_start = sync_start
        self.probe = probe or health_probe.probe
        self.probe_host = probe_host or settings.PROBE_HOST
        self.state = ServiceState.STOPPED

    #* --- Accessors ---
    def port(self) -> int:
        return self.config.port

    def user(self) -> str:
        return self.config.user

    def group(self) -> Union[str, List[str]]:
        """The configured group, or list of groups, falling back to `default_group()`."""
        if self.config.group is None:
            return default_group()
        if isinstance(self.config.group, tuple):
            return list(self.config.group)
        return self.config.group

    def pid(self) -> Optional[int]:
        proc = daemon.find_process(self.config.pidfile)
        return proc.pid if proc else None

    def timeout_options(self) -> Dict[str, Dict[str, Any]]:
        """Retry parameters the supervisor should use to confirm a start."""
        return {"start": {"step": settings.START_STEP, "trials": settings.START_TRIALS}}

    #* --- Lifecycle ---
    def start(self) -> Result:
        """
        Starts the daemon unless it is already running.

        :return: 'already running', 'starting' (asynchronous mode) or 'started' (synchronous mode).
        :raises LaunchError: If the daemon could not be spawned.
        :raises ResourceLimitError: If a configured limit could not be applied.
        :raises StartTimeoutError: In synchronous mode, if the daemon never became healthy.
        """
        existing = self.pid()
        if existing is not None:
            log.info(f"memcached on port {self.config.port} is already running (PID {existing}).")
            return Result("already running", pid=existing)

        self.state = ServiceState.STARTING
        try:
            pid = self._launch()
        except (LaunchError, ResourceLimitError) as e:
            self.state = ServiceState.START_FAILED
            log.error(f"Failed to start memcached on port {self.config.port}: {e}")
            raise

        if not self.sync_start:
            return Result("starting", pid=pid)

        outcome = self.wait_until_running()
        if isinstance(outcome, StartTimedOut):
            raise StartTimeoutError(outcome.elapsed, outcome.trials)
        return Result("started", message=f"in {outcome.elapsed:.2f}s", pid=pid)

    def _launch(self) -> int:
        argv = command.build_argv(self.config)
        hook = limits.make_preexec_hook(self.config.ulimit) if self.config.ulimit else None
        return daemon.launch(
            argv,
            self.config.pidfile,
            stdout=self.config.logfile,
            stderr=self.config.logfile,
            preexec_hook=hook,
            ubic_log=self.config.ubic_log,
            limits=self.config.ulimit,
        )

    def wait_until_running(
        self,
        step: Optional[float] = None,
        trials: Optional[int] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> StartOutcome:
        """
        Polls `status` with linearly increasing delays until the service is healthy.

        Trial N waits step * N seconds before checking, so the defaults
        (0.1s, 10 trials) give up after 5.5 seconds.

        :param step: Base delay in seconds.
        :param trials: Maximum number of checks.
        :param sleep: Sleep function; defaults to time.sleep.
        :return: Started on the first healthy check, StartTimedOut otherwise.
        """
        step = settings.START_STEP if step is None else step
        trials = settings.START_TRIALS if trials is None else trials
        sleep = sleep or time.sleep

        started_at = time.monotonic()
        for trial in range(1, trials + 1):
            sleep(step * trial)
            if self.status() is HealthStatus.RUNNING:
                elapsed = time.monotonic() - started_at
                log.info(f"memcached on port {self.config.port} is running after {trial} checks ({elapsed:.2f}s).")
                return Started(elapsed, trial)

        elapsed = time.monotonic() - started_at
        self.state = ServiceState.START_FAILED
        log.error(f"memcached on port {self.config.port} is not running after {trials} checks ({elapsed:.2f}s).")
        return StartTimedOut(elapsed, trials)

    def stop(self) -> Result:
        """
        Stops the daemon. Stopping a service that is not running is not an error.

        :return: 'stopped' or 'not running'.
        :raises TerminateError: If the daemon could not be stopped.
        """
        previous = self.state
        self.state = ServiceState.STOPPING
        try:
            stopped = daemon.terminate(self.config.pidfile, ubic_log=self.config.ubic_log)
        except TerminateError:
            self.state = previous
            raise
        self.state = ServiceState.STOPPED
        return Result("stopped") if stopped else Result("not running")

    def restart(self) -> Result:
        self.stop()
        return self.start()

    def status(self) -> HealthStatus:
        """
        Reports whether the daemon is running and answering.

        A dead process moves the service to STOPPED, except after a failed
        start, which stays START_FAILED until the next `start`. A live process
        that does not answer counts as RUNNING unless it is still STARTING or
        its start already failed.

        :return: NOT_RUNNING if no live process matches the pid file (the probe
                 is not attempted), RUNNING if the probe succeeds, BROKEN otherwise.
        """
        if not daemon.is_alive(self.config.pidfile):
            if self.state is not ServiceState.START_FAILED:
                self.state = ServiceState.STOPPED
            return HealthStatus.NOT_RUNNING

        if self.probe(self.probe_host, self.config.port):
            self.state = ServiceState.RUNNING
            return HealthStatus.RUNNING

        log.debug(f"memcached on port {self.config.port} is alive but did not answer the probe.")
        if self.state not in (ServiceState.STARTING, ServiceState.START_FAILED):
            self.state = ServiceState.RUNNING
        return HealthStatus.BROKEN
