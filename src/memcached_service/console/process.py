import logging
from typing import List
from memcached_service import settings
from memcached_service.service import MemcachedService
from memcached_service.config import load_service_file
from memcached_service.errors import ConfigValidationError, ServiceError
from memcached_service.console.handler import (
    EXIT_FAILURE, EXIT_OK, EXIT_USAGE, check_configuration, display_status,
    print_help, restart_service, start_service, stop_service,
)

log = logging.getLogger(__name__)

SERVICE_COMMANDS = ("start", "stop", "restart", "status", "check-config")


def execute_command(command: str, args: List[str]) -> int:
    """
    Executes a single command from the user.

    :param command: The main command string (e.g., 'start', 'status').
    :param args: A list of arguments for the command; the first is the service file.
    :return: The process exit code.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    if command == "help":
        print_help()
        return EXIT_OK
    if command not in SERVICE_COMMANDS:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return EXIT_USAGE
    if not args:
        print(f"Usage: memcached-service {command} <service-file>")
        return EXIT_USAGE

    try:
        config = load_service_file(args[0], pid_dir=settings.PID_DIR)
    except ConfigValidationError as e:
        print(f"Invalid service file '{args[0]}':")
        for error in e.errors:
            print(f"  - {error}")
        return EXIT_USAGE

    service = MemcachedService(config)
    command_map = {
        "start": lambda: start_service(service),
        "stop": lambda: stop_service(service),
        "restart": lambda: restart_service(service),
        "status": lambda: display_status(service),
        "check-config": lambda: check_configuration(config),
    }

    try:
        return command_map[command]()
    except ServiceError as e:
        log.critical(f"'{command}' failed: {e}", exc_info=settings.VERBOSE_LOGGING)
        return EXIT_FAILURE
