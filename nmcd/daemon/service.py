"""Service manager integration.

``ProcessServiceManager`` is the manager used when nmcd runs as a plain
process: SIGINT/SIGTERM request a stop, a PID file marks the started
daemon, and privileges are dropped to a configured user and group once
the engine is listening.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import sys
from pathlib import Path
from typing import Any, Protocol

from nmcd.utils.exceptions import ServiceError
from nmcd.utils.logging_config import get_logger

logger = get_logger(__name__)

SERVICE_COMMANDS = ("install", "remove", "start", "stop")


class ServiceManager(Protocol):
    """What the orchestrator needs from a service manager."""

    def drop_privileges(self) -> None:
        """Switch to the unprivileged user and group, if configured."""

    def set_started(self) -> None:
        """Report that the service is up."""

    async def wait_for_stop(self) -> None:
        """Return once the manager requests a stop."""


def _resolve_uid(value: str) -> tuple[int, int | None]:
    """Return (uid, primary gid if known) for a user name or numeric id."""
    import pwd

    try:
        entry = pwd.getpwuid(int(value)) if value.isdigit() else pwd.getpwnam(value)
    except KeyError:
        if value.isdigit():
            return int(value), None
        msg = f"unknown user '{value}'"
        raise ServiceError(msg, {"uid": value}) from None
    return entry.pw_uid, entry.pw_gid


def _resolve_gid(value: str) -> int:
    import grp

    if value.isdigit():
        return int(value)
    try:
        return grp.getgrnam(value).gr_gid
    except KeyError:
        msg = f"unknown group '{value}'"
        raise ServiceError(msg, {"gid": value}) from None


def _read_pid(pid_file: Path) -> int:
    try:
        pid_text = pid_file.read_text(encoding="utf-8").strip()
    except OSError as e:
        msg = f"unable to read PID file {pid_file}: {e}"
        raise ServiceError(msg) from e
    if not pid_text.isdigit() or int(pid_text) <= 0:
        msg = f"PID file {pid_file} contains invalid data: {pid_text[:50]!r}"
        raise ServiceError(msg)
    return int(pid_text)


def run_service_command(command: str, pid_file: str = "") -> None:
    """Handle ``--service`` for a daemon running as a plain process.

    Only ``stop`` is meaningful here: it sends SIGTERM to the process named
    in the PID file.  Registration commands need a platform service
    manager.

    Raises:
        ServiceError: If the command is unknown, unsupported or failed

    """
    if command not in SERVICE_COMMANDS:
        msg = f"unknown service command '{command}' -- choose one of {list(SERVICE_COMMANDS)}"
        raise ServiceError(msg)
    if command != "stop":
        msg = f"service command '{command}' is not supported on {sys.platform}"
        raise ServiceError(msg)
    if not pid_file:
        msg = "the stop service command requires --pidfile"
        raise ServiceError(msg)

    pid = _read_pid(Path(pid_file).expanduser())
    try:
        os.kill(pid, signal.SIGTERM)
    except OSError as e:
        msg = f"unable to stop daemon with PID {pid}: {e}"
        raise ServiceError(msg, {"pid": pid}) from e
    logger.info("Sent SIGTERM to daemon with PID %d", pid)


class ProcessServiceManager:
    """Service manager for a daemon running as an ordinary process."""

    def __init__(
        self,
        pid_file: str | Path | None = None,
        uid: str = "",
        gid: str = "",
    ):
        """Initialize process service manager.

        Args:
            pid_file: Where to write the PID once started (no file if None)
            uid: User to drop privileges to (name or numeric id)
            gid: Group to drop privileges to (name or numeric id)

        """
        self.pid_file = Path(pid_file).expanduser() if pid_file else None
        self.uid = uid
        self.gid = gid
        self.started = False
        self._stop_event = asyncio.Event()
        self._signals: list[signal.Signals] = []

    def request_stop(self, signum: int | None = None) -> None:
        """Ask the daemon to stop."""
        if signum is not None:
            logger.info("Received signal %d, initiating shutdown", signum)
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to ``request_stop``.

        Must be called from inside the running event loop.
        """
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop, int(sig))
            except NotImplementedError:
                # Windows event loops have no add_signal_handler

                def handler(signum: int, _frame: Any) -> None:
                    loop.call_soon_threadsafe(self.request_stop, signum)

                signal.signal(sig, handler)
            self._signals.append(sig)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)
        self._signals.clear()

    async def wait_for_stop(self) -> None:
        await self._stop_event.wait()

    def drop_privileges(self) -> None:
        """Switch to the configured user and group.

        Nothing happens when neither is configured.  Without root the call
        only succeeds if the process already runs as the requested ids.

        Raises:
            ServiceError: If the ids are unknown or cannot be assumed

        """
        if not self.uid and not self.gid:
            return
        if os.name != "posix":
            msg = f"dropping privileges is not supported on {sys.platform}"
            raise ServiceError(msg)

        uid: int | None = None
        gid: int | None = None
        if self.uid:
            uid, gid = _resolve_uid(self.uid)
        if self.gid:
            gid = _resolve_gid(self.gid)

        if os.geteuid() != 0:
            if (uid is None or uid == os.geteuid()) and (
                gid is None or not self.gid or gid == os.getegid()
            ):
                return
            msg = "must be root to drop privileges"
            raise ServiceError(msg, {"uid": self.uid, "gid": self.gid})

        try:
            if gid is not None:
                os.setgroups([gid])
                os.setgid(gid)
            if uid is not None:
                os.setuid(uid)
        except OSError as e:
            msg = f"unable to drop privileges: {e}"
            raise ServiceError(msg, {"uid": self.uid, "gid": self.gid}) from e
        logger.info("Dropped privileges to uid=%s gid=%s", uid, gid)

    def set_started(self) -> None:
        """Write the PID file and mark the daemon as started."""
        if self.pid_file is not None:
            self.write_pid()
        self.started = True
        logger.info("Daemon started (PID %d)", os.getpid())

    def write_pid(self) -> None:
        """Write the current PID to the PID file atomically."""
        assert self.pid_file is not None
        pid = os.getpid()
        temp_file = self.pid_file.with_suffix(self.pid_file.suffix + ".tmp")
        try:
            self.pid_file.parent.mkdir(parents=True, exist_ok=True)
            temp_file.write_text(str(pid), encoding="utf-8")
            temp_file.replace(self.pid_file)
        except OSError as e:
            with contextlib.suppress(OSError):
                temp_file.unlink()
            msg = f"failed to write PID file {self.pid_file}: {e}"
            raise ServiceError(msg) from e
        logger.debug("Wrote PID %d to %s", pid, self.pid_file)

    def remove_pid(self) -> None:
        if self.pid_file is not None and self.pid_file.exists():
            self.pid_file.unlink()
            logger.debug("Removed PID file: %s", self.pid_file)
