import sys
import logging
import setproctitle
from typing import List, Optional
from memcached_service import settings
from memcached_service.log import setup_logging
from memcached_service.console import execute_command, print_help

log = logging.getLogger("console")


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the memcached-service command line."""
    setproctitle.setproctitle(settings.PROCESS_TITLE)

    args = list(sys.argv[1:] if argv is None else argv)
    if "--verbose" in args:
        settings.VERBOSE_LOGGING = True
        args.remove("--verbose")
    setup_logging(logging.DEBUG if settings.VERBOSE_LOGGING else logging.INFO)

    if not args:
        print_help()
        return 2

    command, rest = args[0].lower(), args[1:]
    log.debug(f"Received command: {command}, args: {rest}")
    try:
        return execute_command(command, rest)
    except KeyboardInterrupt:
        log.warning("Interrupted by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
