"""Tests for the memcached command line builder."""

from dataclasses import replace
from pathlib import Path

import pytest

from memcached_service.config import ServiceConfig
from memcached_service.service.command import build_argv, render_command


@pytest.fixture
def config():
    return ServiceConfig(
        port=1358,
        pidfile=Path("/var/run/memcached/1358.pid"),
        binary=Path("/usr/bin/memcached"),
        maxsize=10,
        user="memcache",
    )


class TestBuildArgv:
    """Flag rendering rules."""

    def test_minimal_config(self, config):
        assert build_argv(config) == ["/usr/bin/memcached", "-p", "1358", "-m", "10"]

    def test_root_user_adds_u_flag(self, config):
        argv = build_argv(replace(config, user="root"))
        assert argv[:3] == ["/usr/bin/memcached", "-u", "root"]

    @pytest.mark.parametrize("user", ["nobody", "memcache", "rootless", "Root"])
    def test_non_root_user_never_adds_u_flag(self, config, user):
        assert "-u" not in build_argv(replace(config, user=user))

    def test_max_connections(self, config):
        argv = build_argv(replace(config, max_connections=2048))
        assert argv[-2:] == ["-c", "2048"]

    @pytest.mark.parametrize("verbose,expected", [(None, []), (0, []), (1, ["-v"]), (2, ["-vv"])])
    def test_verbosity(self, config, verbose, expected):
        argv = build_argv(replace(config, verbose=verbose))
        assert argv[5:] == expected

    def test_other_argv_is_last_and_unsplit(self, config):
        argv = build_argv(replace(config, verbose=1, other_argv="-t 4 -R 20"))
        assert argv[-1] == "-t 4 -R 20"
        assert argv[-2] == "-v"

    def test_full_order(self, config):
        full = replace(config, user="root", max_connections=100, verbose=2, other_argv="-t 8")
        assert build_argv(full) == [
            "/usr/bin/memcached", "-u", "root", "-p", "1358", "-m", "10",
            "-c", "100", "-vv", "-t 8",
        ]

    def test_same_config_same_argv(self, config):
        twin = ServiceConfig(**{f: getattr(config, f) for f in config.__dataclass_fields__})
        assert build_argv(config) == build_argv(twin)
        assert build_argv(config) == build_argv(config)

    def test_binary_with_space_is_quoted(self, config):
        argv = build_argv(replace(config, binary=Path("/opt/my cache/memcached")))
        assert argv[0] == "'/opt/my cache/memcached'"

    def test_binary_existence_is_not_checked(self, config):
        argv = build_argv(replace(config, binary=Path("/nonexistent/memcached")))
        assert argv[0] == "/nonexistent/memcached"


def test_render_command(config):
    argv = build_argv(replace(config, other_argv="-t 4"))
    assert render_command(argv) == "/usr/bin/memcached -p 1358 -m 10 -t 4"
