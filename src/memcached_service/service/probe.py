import logging
from typing import Optional
from pymemcache.client.base import Client
from pymemcache.exceptions import MemcacheError
from memcached_service import settings
from memcached_service.errors import ProbeFailure

log = logging.getLogger(__name__)


def _round_trip(client: Client) -> None:
    """Writes the sentinel key and reads it back, raising ProbeFailure on any mismatch."""
    if not client.set(settings.PROBE_KEY, settings.PROBE_VALUE, noreply=False):
        raise ProbeFailure("sentinel key was not stored")
    value = client.get(settings.PROBE_KEY)
    if value is None:
        raise ProbeFailure("sentinel key missing right after set")
    if value != settings.PROBE_VALUE.encode():
        raise ProbeFailure(f"sentinel key read back as {value!r}")


def probe(host: str, port: int, timeout: Optional[float] = None) -> bool:
    """
    Checks that a memcached instance actually serves requests.

    A new client is built for every call and always closed before returning,
    so no socket and no dead-server bookkeeping outlives a single probe. A
    server that was down during an earlier probe is never reported dead from
    stale client state after a restart.

    :param host: The memcached host.
    :param port: The memcached port.
    :param timeout: Connect and I/O timeout in seconds.
    :return: True if the sentinel key could be written and read back.
    """
    timeout = settings.PROBE_TIMEOUT if timeout is None else timeout
    client = Client((host, port), connect_timeout=timeout, timeout=timeout)
    try:
        _round_trip(client)
        return True
    except (ProbeFailure, MemcacheError, OSError) as e:
        log.debug(f"Health probe against {host}:{port} failed: {e}")
        return False
    finally:
        client.close()
