"""Verify that a local TCP port is free, force-killing leaked owners if not."""

from __future__ import annotations

import logging
import os
import socket
import time
from collections.abc import Callable

import psutil

from indextts_launcher.errors import KillFailed, PortStillBound, SpawnError, UnsupportedPlatform
from indextts_launcher.runner.command import CommandRunner, CommandSpec, Platform

__all__ = ["PortReclaimer", "port_is_reachable"]

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 5
DEFAULT_DELAY = 0.3
DEFAULT_PROBE_TIMEOUT = 0.2


def port_is_reachable(
    port: int, *, host: str = "127.0.0.1", timeout: float = DEFAULT_PROBE_TIMEOUT
) -> bool:
    """Return ``True`` when something accepts TCP connections on ``host:port``."""

    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


class PortReclaimer:
    """Probe a port and kill whatever still listens on it, with bounded retries."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        platform: Platform | None = None,
        attempts: int = DEFAULT_ATTEMPTS,
        delay: float = DEFAULT_DELAY,
        probe: Callable[[int], bool] = port_is_reachable,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.runner = runner
        self.platform = platform or runner.platform
        self.attempts = attempts
        self.delay = delay
        self._probe = probe
        self._sleep = sleep

    def ensure_closed(self, port: int) -> None:
        """Return once nothing accepts connections on ``port``.

        Raises :class:`UnsupportedPlatform` when the port is bound and this
        platform has no kill mechanism, and :class:`PortStillBound` when the
        port survives every attempt.
        """

        for attempt in range(1, self.attempts + 1):
            if not self._probe(port):
                if attempt > 1:
                    logger.info("Port %d released after %d attempt(s)", port, attempt - 1)
                return
            logger.warning("Port %d still reachable (attempt %d/%d)", port, attempt, self.attempts)
            self.force_kill(port)
            self._sleep(self.delay)
        if self._probe(port):
            raise PortStillBound(port)

    def force_kill(self, port: int) -> list[int]:
        """Kill every process listening on ``port`` and return their PIDs."""

        if not (self.platform.is_unix or self.platform is Platform.WINDOWS):
            raise UnsupportedPlatform(
                "Force killing ports",
                self.platform.value,
                hint="Please stop the process holding the port manually.",
            )
        own_pid = os.getpid()
        pids = [pid for pid in self.find_owners(port) if pid != own_pid]
        for pid in pids:
            logger.info("Killing PID %d holding port %d", pid, port)
            _kill(pid, port)
        return pids

    def find_owners(self, port: int) -> list[int]:
        try:
            connections = psutil.net_connections(kind="tcp")
        except psutil.AccessDenied:
            # macOS only lists other users' sockets to root.
            logger.debug("Socket table not readable; asking the OS tools for port %d", port)
            return self._find_owners_with_tools(port)
        pids: list[int] = []
        for conn in connections:
            if conn.status != psutil.CONN_LISTEN or not conn.pid:
                continue
            if getattr(conn.laddr, "port", None) == port and conn.pid not in pids:
                pids.append(conn.pid)
        return pids

    def _find_owners_with_tools(self, port: int) -> list[int]:
        if self.platform is Platform.WINDOWS:
            script = (
                f"Get-NetTCPConnection -LocalPort {port} -State Listen "
                "-ErrorAction SilentlyContinue | Select-Object -ExpandProperty OwningProcess"
            )
            spec = CommandSpec.of("powershell", "-NoProfile", "-Command", script)
        else:
            spec = CommandSpec.of("lsof", "-nP", "-t", f"-iTCP:{port}", "-sTCP:LISTEN")
        try:
            result = self.runner.run(spec)
        except SpawnError as exc:
            raise UnsupportedPlatform(
                "Finding the process on a port",
                self.platform.value,
                hint=f"{exc}. Please stop the process holding port {port} manually.",
            ) from exc
        # lsof exits 1 when nothing matches; an empty stdout is the real signal.
        return _parse_pids(result.stdout)


def _kill(pid: int, port: int) -> None:
    try:
        psutil.Process(pid).kill()
    except psutil.NoSuchProcess:
        logger.debug("PID %d exited before it could be killed", pid)
    except psutil.AccessDenied as exc:
        raise KillFailed(f"Not permitted to kill PID {pid} on port {port}: {exc}") from exc


def _parse_pids(output: str) -> list[int]:
    pids: list[int] = []
    for token in output.split():
        if token.isdigit():
            pid = int(token)
            if pid > 0 and pid not in pids:
                pids.append(pid)
    return pids
