"""Tests for the process service manager and service commands."""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from unittest.mock import patch

import pytest

from nmcd.daemon.service import ProcessServiceManager, run_service_command
from nmcd.utils.exceptions import ServiceError

pytestmark = [pytest.mark.unit, pytest.mark.daemon]

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX only")


class TestPidFile:
    """PID file handling."""

    def test_set_started_writes_pid(self, tmp_path):
        pid_file = tmp_path / "run" / "nmcd.pid"
        manager = ProcessServiceManager(pid_file)

        manager.set_started()

        assert manager.started
        assert pid_file.read_text(encoding="utf-8") == str(os.getpid())
        assert not pid_file.with_suffix(".pid.tmp").exists()

    def test_remove_pid(self, tmp_path):
        pid_file = tmp_path / "nmcd.pid"
        manager = ProcessServiceManager(pid_file)
        manager.set_started()

        manager.remove_pid()

        assert not pid_file.exists()

    def test_no_pid_file(self):
        manager = ProcessServiceManager()
        manager.set_started()
        manager.remove_pid()
        assert manager.pid_file is None


class TestStopRequests:
    """Stop requests from signals and direct calls."""

    @pytest.mark.asyncio
    async def test_request_stop_releases_waiter(self):
        manager = ProcessServiceManager()
        waiter = asyncio.create_task(manager.wait_for_stop())
        await asyncio.sleep(0)
        assert not waiter.done()

        manager.request_stop()
        await asyncio.wait_for(waiter, timeout=1.0)
        assert manager.stop_requested

    @posix_only
    @pytest.mark.asyncio
    async def test_sigterm_requests_stop(self):
        manager = ProcessServiceManager()
        manager.install_signal_handlers()
        try:
            os.kill(os.getpid(), signal.SIGTERM)
            await asyncio.wait_for(manager.wait_for_stop(), timeout=1.0)
        finally:
            manager.remove_signal_handlers()
        assert manager.stop_requested


class TestDropPrivileges:
    """Privilege dropping."""

    def test_nothing_configured(self):
        ProcessServiceManager().drop_privileges()

    @posix_only
    def test_same_user_without_root(self):
        if os.geteuid() == 0:
            pytest.skip("running as root")
        ProcessServiceManager(uid=str(os.geteuid())).drop_privileges()

    @posix_only
    def test_other_user_without_root(self):
        if os.geteuid() == 0:
            pytest.skip("running as root")
        manager = ProcessServiceManager(uid="0")
        with pytest.raises(ServiceError, match="must be root"):
            manager.drop_privileges()

    @posix_only
    def test_unknown_user(self):
        manager = ProcessServiceManager(uid="nmcd-no-such-user")
        with pytest.raises(ServiceError, match="unknown user"):
            manager.drop_privileges()

    @posix_only
    def test_unknown_group(self):
        manager = ProcessServiceManager(gid="nmcd-no-such-group")
        with pytest.raises(ServiceError, match="unknown group"):
            manager.drop_privileges()

    @posix_only
    def test_drops_as_root(self):
        manager = ProcessServiceManager(uid="1234", gid="5678")
        with patch("nmcd.daemon.service.os.geteuid", return_value=0), patch(
            "nmcd.daemon.service.os.setgroups"
        ) as setgroups, patch("nmcd.daemon.service.os.setgid") as setgid, patch(
            "nmcd.daemon.service.os.setuid"
        ) as setuid:
            manager.drop_privileges()

        setgroups.assert_called_once_with([5678])
        setgid.assert_called_once_with(5678)
        setuid.assert_called_once_with(1234)

    @posix_only
    def test_setuid_failure(self):
        manager = ProcessServiceManager(uid="1234")
        with patch("nmcd.daemon.service.os.geteuid", return_value=0), patch(
            "nmcd.daemon.service.os.setgroups"
        ), patch("nmcd.daemon.service.os.setgid"), patch(
            "nmcd.daemon.service.os.setuid", side_effect=PermissionError("denied")
        ):
            with pytest.raises(ServiceError, match="unable to drop privileges"):
                manager.drop_privileges()


class TestServiceCommands:
    """Tests for run_service_command."""

    def test_unknown_command(self):
        with pytest.raises(ServiceError, match="unknown service command"):
            run_service_command("restart")

    @pytest.mark.parametrize("command", ["install", "remove", "start"])
    def test_registration_unsupported(self, command):
        with pytest.raises(ServiceError, match="not supported"):
            run_service_command(command)

    def test_stop_requires_pid_file(self):
        with pytest.raises(ServiceError, match="--pidfile"):
            run_service_command("stop")

    def test_stop_invalid_pid_file(self, tmp_path):
        pid_file = tmp_path / "nmcd.pid"
        pid_file.write_text("garbage", encoding="utf-8")
        with pytest.raises(ServiceError, match="invalid data"):
            run_service_command("stop", str(pid_file))

    def test_stop_missing_pid_file(self, tmp_path):
        with pytest.raises(ServiceError, match="unable to read PID file"):
            run_service_command("stop", str(tmp_path / "absent.pid"))

    def test_stop_sends_sigterm(self, tmp_path):
        pid_file = tmp_path / "nmcd.pid"
        pid_file.write_text("4242\n", encoding="utf-8")
        with patch("nmcd.daemon.service.os.kill") as kill:
            run_service_command("stop", str(pid_file))
        kill.assert_called_once_with(4242, signal.SIGTERM)
