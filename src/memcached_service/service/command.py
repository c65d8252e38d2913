import shlex
from typing import TYPE_CHECKING, List, Sequence

if TYPE_CHECKING:
    from memcached_service.config import ServiceConfig

ROOT_USER = "root"


def build_argv(config: "ServiceConfig") -> List[str]:
    """
    Renders a service config into the memcached argument vector.

    The binary comes first, followed by the flags in a fixed order. Values
    produced here are shell-quoted; 'other_argv' is shell text supplied by the
    operator and is appended as the last element exactly as given.

    :param config: The validated service configuration.
    :return: The argument vector, identical for identical configs.
    """
    argv = [shlex.quote(str(config.binary))]

    # memcached refuses to run as root unless told so with -u. For any other
    # user the flag would be ignored, so it is only passed for root.
    if config.user == ROOT_USER:
        argv += ["-u", shlex.quote(config.user)]

    argv += ["-p", str(config.port)]
    argv += ["-m", str(config.maxsize)]

    if config.max_connections is not None:
        argv += ["-c", str(config.max_connections)]

    if config.verbose == 1:
        argv.append("-v")
    elif config.verbose is not None and config.verbose > 1:
        argv.append("-vv")

    if config.other_argv:
        argv.append(config.other_argv)

    return argv


def render_command(argv: Sequence[str]) -> str:
    """Joins an argument vector into the shell command line the daemon is exec'd with."""
    return " ".join(argv)
