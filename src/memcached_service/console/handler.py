import os
import psutil
import logging
from typing import TYPE_CHECKING
from memcached_service.errors import ResourceLimitError
from memcached_service.service import HealthStatus, MemcachedService, Started
from memcached_service.service.limits import check_limits

if TYPE_CHECKING:
    from memcached_service.config import ServiceConfig

log = logging.getLogger(__name__)

#* --- Exit Codes (LSB init-script conventions) ---
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_NOT_RUNNING = 3

STATUS_EXIT_CODES = {
    HealthStatus.RUNNING: EXIT_OK,
    HealthStatus.BROKEN: EXIT_FAILURE,
    HealthStatus.NOT_RUNNING: EXIT_NOT_RUNNING,
}


def start_service(service: MemcachedService) -> int:
    """
    Starts the service and confirms it came up, using the service's own retry options.

    :param service: The service to start.
    :return: EXIT_OK if the service is running, EXIT_FAILURE otherwise.
    """
    result = service.start()
    print(f"memcached:{service.port()} {result}")
    if result.status != "starting":
        return EXIT_OK

    options = service.timeout_options()["start"]
    outcome = service.wait_until_running(step=options["step"], trials=options["trials"])
    if isinstance(outcome, Started):
        print(f"memcached:{service.port()} running (PID {service.pid()})")
        return EXIT_OK

    print(f"memcached:{service.port()} failed to start: {service.status().value} after {outcome.elapsed:.2f}s")
    return EXIT_FAILURE


def stop_service(service: MemcachedService) -> int:
    """Stops the service; an already stopped service is reported, not treated as an error."""
    result = service.stop()
    print(f"memcached:{service.port()} {result}")
    return EXIT_OK


def restart_service(service: MemcachedService) -> int:
    log.info("Stopping service...")
    stop_service(service)
    log.info("Starting service...")
    return start_service(service)


def display_status(service: MemcachedService) -> int:
    """Checks and displays the current status of the service, including resource usage."""
    status = service.status()
    pid = service.pid()
    print(f"\nmemcached:{service.port()} is {status.value.upper()}")
    if pid is not None:
        try:
            p = psutil.Process(pid)
            cpu = p.cpu_percent(interval=0.1)
            mem = p.memory_info().rss
            print(f"  - {p.name():<16} : PID {pid:<8} | CPU: {cpu:.1f}% | MEM: {mem/1024/1024:.1f} MB")
        except psutil.NoSuchProcess:
            print(f"  - PID {pid:<8} exited while reading its status")
        except psutil.AccessDenied:
            print(f"  - PID {pid:<8} (Access Denied)")
    elif service.config.pidfile.exists():
        print(f"  - Stale pid file '{service.config.pidfile}'. Run 'stop' to clean it up.")
    group = service.group()
    groups = ", ".join(group) if isinstance(group, list) else group
    print(f"  - user {service.user()}, group {groups}\n")
    return STATUS_EXIT_CODES[status]


def check_configuration(config: "ServiceConfig") -> int:
    """
    Validates the parts of a service definition that depend on the host.

    :param config: The service configuration to check.
    :return: EXIT_OK if everything is usable, otherwise EXIT_FAILURE.
    """
    log.info("Performing configuration and path validation...")
    all_ok = True

    if not config.binary.is_file() or not os.access(config.binary, os.X_OK):
        log.error(f"CONFIG CHECK FAILED: memcached not found or not executable at '{config.binary}'")
        all_ok = False
    else:
        log.info(f"Config Check OK: Found memcached at '{config.binary}'")

    if config.ulimit:
        try:
            check_limits(config.ulimit)
            log.info(f"Config Check OK: ulimit {config.limits}")
        except ResourceLimitError as e:
            log.error(f"CONFIG CHECK FAILED: {e}")
            all_ok = False

    for name, path in (("pidfile", config.pidfile), ("logfile", config.logfile), ("ubic_log", config.ubic_log)):
        if path is None:
            continue
        parent = path.parent
        while not parent.exists() and parent != parent.parent:
            parent = parent.parent
        if not os.access(parent, os.W_OK):
            log.error(f"CONFIG CHECK FAILED: {name} '{path}' is not writable (checked '{parent}')")
            all_ok = False

    return EXIT_OK if all_ok else EXIT_FAILURE


def print_help() -> None:
    """Prints the main help text for the console."""
    print("\nUsage: memcached-service <command> <service-file> [--verbose]")
    print("\nAvailable commands:")
    print("  start          - Start memcached and wait until it answers.")
    print("  stop           - Stop memcached.")
    print("  restart        - Stop and then start memcached.")
    print("  status         - Show whether memcached is running, broken or not running.")
    print("  check-config   - Validate the service file and the paths it refers to.")
    print("  help           - Show this help message.")
    print()
