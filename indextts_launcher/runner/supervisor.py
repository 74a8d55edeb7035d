"""Own the lifecycle of the single long-running TTS server process."""

from __future__ import annotations

import enum
import logging
import subprocess
import threading
from dataclasses import dataclass, field

from indextts_launcher.errors import (
    AlreadyRunning,
    SupervisorBusy,
    TerminationFailed,
)
from indextts_launcher.runner.command import CommandRunner, CommandSpec
from indextts_launcher.runner.log_stream import STDERR, STDOUT, Sink, StreamForwarder
from indextts_launcher.runner.ports import PortReclaimer

__all__ = ["DEFAULT_SERVER_PORT", "ServerStatus", "ServerSupervisor"]

logger = logging.getLogger(__name__)

DEFAULT_SERVER_PORT = 7860
SERVER_STEP = "server"


class ServerStatus(str, enum.Enum):
    STOPPED = "Stopped"
    STARTING = "Starting"
    RUNNING = "Running"
    ERROR = "Error"


@dataclass(slots=True)
class _ServerHandle:
    spec: CommandSpec
    process: subprocess.Popen[bytes]
    forwarders: list[StreamForwarder] = field(default_factory=list)

    @property
    def pid(self) -> int:
        return self.process.pid


class ServerSupervisor:
    """Start, stop, and poll at most one supervised server.

    The handle is only read or replaced under ``_lock``; spawning, waiting,
    and port reclamation all happen outside it. A start in flight is marked
    by ``_starting`` so that a concurrent start is rejected without holding
    the lock across the spawn.
    """

    def __init__(
        self,
        runner: CommandRunner,
        sink: Sink,
        *,
        reclaimer: PortReclaimer | None = None,
        port: int = DEFAULT_SERVER_PORT,
        stop_timeout: float = 10.0,
    ) -> None:
        self.runner = runner
        self.sink = sink
        self.reclaimer = reclaimer or PortReclaimer(runner)
        self.port = port
        self.stop_timeout = stop_timeout
        self._lock = threading.Lock()
        self._handle: _ServerHandle | None = None
        self._starting = False
        self._draining: list[StreamForwarder] = []

    @property
    def pid(self) -> int | None:
        with self._lock:
            return self._handle.pid if self._handle is not None else None

    def start(self, spec: CommandSpec) -> ServerStatus:
        with self._lock:
            if self._handle is not None:
                raise AlreadyRunning(self._handle.pid)
            if self._starting:
                raise AlreadyRunning()
            self._starting = True
        try:
            process = self.runner.spawn(spec)
        except BaseException:
            with self._lock:
                self._starting = False
            raise
        handle = _ServerHandle(spec=spec, process=process)
        if process.stdout is not None:
            handle.forwarders.append(
                StreamForwarder(process.stdout, STDOUT, self.sink, step=SERVER_STEP).start()
            )
        if process.stderr is not None:
            handle.forwarders.append(
                StreamForwarder(process.stderr, STDERR, self.sink, step=SERVER_STEP).start()
            )
        with self._lock:
            self._handle = handle
            self._starting = False
            self._draining = [forwarder for forwarder in self._draining if forwarder.alive]
        logger.info("Server started (pid %d) on port %d", handle.pid, self.port)
        return ServerStatus.RUNNING

    def stop(self) -> ServerStatus:
        with self._lock:
            if self._starting:
                raise SupervisorBusy("Server is still starting; retry once it is running.")
            handle, self._handle = self._handle, None
            draining, self._draining = self._draining, []
        if handle is not None:
            try:
                self._terminate(handle.process)
            except OSError as exc:
                with self._lock:
                    if self._handle is None:
                        self._handle = handle
                    self._draining.extend(draining)
                raise TerminationFailed(f"Failed to stop server: {exc}") from exc
            draining.extend(handle.forwarders)
            logger.info("Server process %d exited", handle.pid)
        for forwarder in draining:
            forwarder.join(timeout=2.0)
        self.reclaimer.ensure_closed(self.port)
        return ServerStatus.STOPPED

    def status(self) -> ServerStatus:
        with self._lock:
            if self._handle is None:
                return ServerStatus.STARTING if self._starting else ServerStatus.STOPPED
            exit_code = self._handle.process.poll()
            if exit_code is None:
                return ServerStatus.RUNNING
            logger.info("Server process %d exited with %s", self._handle.pid, exit_code)
            # Forwarders may still be flushing; stop() joins them.
            self._draining.extend(self._handle.forwarders)
            self._handle = None
            return ServerStatus.STOPPED

    def _terminate(self, process: subprocess.Popen[bytes]) -> None:
        if process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Server %d ignored terminate; killing", process.pid)
            process.kill()
            process.wait()
