"""Shared pytest configuration and fixtures for all tests."""

import socket
import textwrap
from pathlib import Path

import pytest

from memcached_service.config import ServiceConfig
from memcached_service.service import daemon


def pytest_collection_modifyitems(config, items):
    """Automatically apply markers based on test file location."""
    for item in items:
        if "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Helpers
# =============================================================================


def free_port() -> int:
    """Return a TCP port nothing is listening on right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def write_script(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n" + textwrap.dedent(body))
    path.chmod(0o755)
    return path


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_memcached(tmp_path):
    """A stand-in 'memcached' that logs its argv and nofile limit, then sleeps."""
    return write_script(
        tmp_path / "bin" / "memcached",
        """\
        echo "fake memcached $*"
        ulimit -n > "$(dirname "$0")/nofile.txt"
        exec sleep 60
        """,
    )


@pytest.fixture
def stubborn_memcached(tmp_path):
    """A stand-in that ignores SIGTERM (ignored signals survive exec)."""
    return write_script(
        tmp_path / "stubborn" / "memcached",
        """\
        trap '' TERM
        exec sleep 60
        """,
    )


@pytest.fixture
def crashing_memcached(tmp_path):
    """A stand-in that exits right away, like memcached given a bad option."""
    return write_script(
        tmp_path / "crashing" / "memcached",
        """\
        echo "failed to listen on TCP port" >&2
        exit 71
        """,
    )


@pytest.fixture
def pidfile(tmp_path):
    """Pid file path; any daemon still recorded there is killed after the test."""
    path = tmp_path / "run" / "memcached.pid"
    yield path
    daemon.terminate(path, graceful_timeout=1, kill_timeout=1)


@pytest.fixture
def service_config(tmp_path, fake_memcached, pidfile):
    return ServiceConfig(
        port=free_port(),
        pidfile=pidfile,
        binary=fake_memcached,
        maxsize=10,
        logfile=tmp_path / "log" / "memcached.log",
        ubic_log=tmp_path / "log" / "ubic.log",
        user="nobody",
    )
