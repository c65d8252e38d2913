"""Tests for the MemcachedService state machine."""

import grp
import subprocess
from dataclasses import replace
from unittest.mock import MagicMock, patch

import psutil
import pytest

from memcached_service.errors import LaunchError, ResourceLimitError, StartTimeoutError, TerminateError
from memcached_service.service import HealthStatus, MemcachedService, Result, ServiceState, Started, StartTimedOut
from memcached_service.service import daemon, persistence
from memcached_service.service.lifecycle import default_group


@pytest.fixture
def probe():
    return MagicMock(return_value=True)


@pytest.fixture
def service(service_config, probe):
    return MemcachedService(service_config, probe=probe)


def test_accessors(service, service_config):
    assert service.port() == service_config.port
    assert service.user() == "nobody"
    assert service.pid() is None
    assert service.timeout_options() == {"start": {"step": 0.1, "trials": 10}}


class TestGroup:
    """Group reporting."""

    def test_default_group(self, service):
        assert service.group() == grp.getgrgid(0).gr_name

    def test_configured_group(self, service_config, probe):
        service = MemcachedService(replace(service_config, group="memcache"), probe=probe)
        assert service.group() == "memcache"

    def test_configured_group_list(self, service_config, probe):
        service = MemcachedService(replace(service_config, group=("memcache", "cache")), probe=probe)
        assert service.group() == ["memcache", "cache"]

    def test_no_gid_zero(self):
        with patch("memcached_service.service.lifecycle.grp.getgrgid", side_effect=KeyError(0)):
            assert default_group() == "root"


class TestStatus:
    """status() never probes a dead daemon."""

    def test_dead_pid_is_not_running(self, service, service_config, probe):
        dead = subprocess.Popen(["true"])
        dead.wait()
        persistence.write_pid_file(service_config.pidfile, dead.pid, {"pid": dead.pid})

        assert service.status() is HealthStatus.NOT_RUNNING
        probe.assert_not_called()
        assert service.state is ServiceState.STOPPED

    def test_running(self, service, service_config, probe):
        with patch.object(daemon, "is_alive", return_value=True):
            assert service.status() is HealthStatus.RUNNING
        probe.assert_called_once_with("127.0.0.1", service_config.port)
        assert service.state is ServiceState.RUNNING

    def test_broken(self, service, probe):
        probe.return_value = False
        with patch.object(daemon, "is_alive", return_value=True):
            assert service.status() is HealthStatus.BROKEN
        assert service.state is ServiceState.RUNNING

    def test_broken_while_starting(self, service, probe):
        probe.return_value = False
        service.state = ServiceState.STARTING
        with patch.object(daemon, "is_alive", return_value=True):
            assert service.status() is HealthStatus.BROKEN
        assert service.state is ServiceState.STARTING

    def test_daemon_death_after_async_start(self, service):
        result = service.start()
        assert service.state is ServiceState.STARTING

        proc = psutil.Process(result.pid)
        proc.kill()
        proc.wait(timeout=5)

        assert service.status() is HealthStatus.NOT_RUNNING
        assert service.state is ServiceState.STOPPED

    def test_custom_probe_host(self, service_config, probe):
        service = MemcachedService(service_config, probe=probe, probe_host="10.0.0.5")
        with patch.object(daemon, "is_alive", return_value=True):
            service.status()
        probe.assert_called_once_with("10.0.0.5", service_config.port)

    def test_status_string_values(self):
        assert HealthStatus.RUNNING == "running"
        assert HealthStatus.BROKEN == "broken"
        assert HealthStatus.NOT_RUNNING == "not running"


class TestStart:
    """start() in both start policies."""

    def test_already_running(self, service):
        with patch.object(daemon, "find_process", return_value=MagicMock(pid=99)), \
             patch.object(daemon, "launch") as mock_launch:
            assert service.start() == Result("already running", pid=99)
        mock_launch.assert_not_called()

    def test_async_start(self, service, service_config):
        with patch.object(daemon, "launch", return_value=1234) as mock_launch:
            result = service.start()

        assert result == Result("starting", pid=1234)
        assert str(result) == "starting"
        assert service.state is ServiceState.STARTING
        mock_launch.assert_called_once_with(
            [str(service_config.binary), "-p", str(service_config.port), "-m", "10"],
            service_config.pidfile,
            stdout=service_config.logfile,
            stderr=service_config.logfile,
            preexec_hook=None,
            ubic_log=service_config.ubic_log,
            limits=(),
        )

    def test_start_with_limits_passes_hook(self, service_config, probe):
        service = MemcachedService(replace(service_config, ulimit=(("nofile", 256),)), probe=probe)
        with patch.object(daemon, "launch", return_value=1234) as mock_launch:
            service.start()
        assert callable(mock_launch.call_args.kwargs["preexec_hook"])
        assert mock_launch.call_args.kwargs["limits"] == (("nofile", 256),)

    @pytest.mark.parametrize("error", [LaunchError("Binary not found"), ResourceLimitError("nofile", 1, "denied")])
    def test_launch_failure(self, service, error):
        with patch.object(daemon, "launch", side_effect=error):
            with pytest.raises(type(error)):
                service.start()
        assert service.state is ServiceState.START_FAILED
        assert service.status() is HealthStatus.NOT_RUNNING
        assert service.state is ServiceState.START_FAILED

    def test_sync_start(self, service_config, probe):
        probe.side_effect = [False, False, True]
        service = MemcachedService(service_config, sync_start=True, probe=probe)
        with patch.object(daemon, "launch", return_value=1234), \
             patch.object(daemon, "is_alive", return_value=True), \
             patch("memcached_service.service.lifecycle.time.sleep") as mock_sleep:
            result = service.start()

        assert result.status == "started"
        assert result.pid == 1234
        assert [c.args[0] for c in mock_sleep.call_args_list] == pytest.approx([0.1, 0.2, 0.3])
        assert service.state is ServiceState.RUNNING

    def test_sync_start_timeout(self, service_config, probe):
        probe.return_value = False
        service = MemcachedService(service_config, sync_start=True, probe=probe)
        with patch.object(daemon, "launch", return_value=1234), \
             patch.object(daemon, "is_alive", return_value=True), \
             patch("memcached_service.service.lifecycle.time.sleep") as mock_sleep:
            with pytest.raises(StartTimeoutError, match="not running after 10 checks") as exc_info:
                service.start()

        assert exc_info.value.trials == 10
        assert mock_sleep.call_count == 10
        assert service.state is ServiceState.START_FAILED


class TestWaitUntilRunning:
    """Linear backoff polling."""

    def test_backoff_schedule(self, service, probe):
        probe.return_value = False
        sleeps = []
        with patch.object(daemon, "is_alive", return_value=True):
            outcome = service.wait_until_running(step=0.5, trials=4, sleep=sleeps.append)

        assert isinstance(outcome, StartTimedOut)
        assert outcome.trials == 4
        assert sleeps == [0.5, 1.0, 1.5, 2.0]
        assert probe.call_count == 4

    def test_first_healthy_check_wins(self, service, probe):
        probe.side_effect = [False, True]
        sleeps = []
        with patch.object(daemon, "is_alive", return_value=True):
            outcome = service.wait_until_running(sleep=sleeps.append)

        assert isinstance(outcome, Started)
        assert outcome.trials == 2
        assert len(sleeps) == 2

    def test_dead_daemon_is_never_probed(self, service, probe):
        outcome = service.wait_until_running(trials=3, sleep=lambda s: None)
        assert isinstance(outcome, StartTimedOut)
        probe.assert_not_called()


class TestStop:
    """stop() and restart()."""

    def test_stop_when_not_running(self, service):
        assert service.stop() == Result("not running")
        assert service.stop() == Result("not running")
        assert service.state is ServiceState.STOPPED

    def test_stop_failure_restores_state(self, service):
        service.state = ServiceState.RUNNING
        with patch.object(daemon, "terminate", side_effect=TerminateError(99, "permission denied")):
            with pytest.raises(TerminateError):
                service.stop()
        assert service.state is ServiceState.RUNNING

    def test_restart(self, service):
        calls = []
        with patch.object(daemon, "terminate", side_effect=lambda *a, **kw: calls.append("stop") or True), \
             patch.object(daemon, "launch", side_effect=lambda *a, **kw: calls.append("start") or 77):
            result = service.restart()
        assert calls == ["stop", "start"]
        assert result == Result("starting", pid=77)


def test_full_lifecycle(service, service_config):
    """Start, confirm, stop against a fake daemon process."""
    assert service.status() is HealthStatus.NOT_RUNNING

    result = service.start()
    assert result.status == "starting"
    assert service.pid() == result.pid

    assert isinstance(service.wait_until_running(sleep=lambda s: None), Started)
    assert service.status() is HealthStatus.RUNNING
    assert service.start().status == "already running"

    assert service.stop() == Result("stopped")
    assert service.status() is HealthStatus.NOT_RUNNING
    assert service.pid() is None
    assert not service_config.pidfile.exists()

    log_text = service_config.logfile.read_text()
    assert f"fake memcached -p {service_config.port} -m 10" in log_text
    assert "daemon started with pid" in service_config.ubic_log.read_text()
