from __future__ import annotations

import os
import socket
import subprocess
import sys
from collections.abc import Iterator
from types import SimpleNamespace

import psutil
import pytest

from indextts_launcher.errors import KillFailed, PortStillBound, SpawnError, UnsupportedPlatform
from indextts_launcher.runner import CommandResult, CommandRunner, CommandSpec, Platform
from indextts_launcher.runner import ports as ports_module
from indextts_launcher.runner.ports import PortReclaimer, _parse_pids, port_is_reachable


class ScriptedRunner(CommandRunner):
    """Answer ``run`` calls with canned stdout and record what was asked."""

    def __init__(self, stdout: str = "", exit_code: int = 0, platform=Platform.LINUX) -> None:
        super().__init__(platform=platform)
        self.stdout = stdout
        self.exit_code = exit_code
        self.calls: list[CommandSpec] = []

    def run(self, spec: CommandSpec, *, timeout: float | None = None) -> CommandResult:
        self.calls.append(spec)
        return CommandResult(spec=spec, exit_code=self.exit_code, stdout=self.stdout)


class MissingToolRunner(ScriptedRunner):
    def run(self, spec: CommandSpec, *, timeout: float | None = None) -> CommandResult:
        self.calls.append(spec)
        raise SpawnError(spec.program, "No such file or directory")


def _conn(pid: int | None, port: int, status: str = psutil.CONN_LISTEN) -> SimpleNamespace:
    return SimpleNamespace(pid=pid, laddr=SimpleNamespace(ip="127.0.0.1", port=port), status=status)


class KillLog:
    """Stand-in for ``psutil.Process`` that records kills instead of sending signals."""

    def __init__(self, error: type[Exception] | None = None) -> None:
        self.killed: list[int] = []
        self.error = error

    def __call__(self, pid: int) -> SimpleNamespace:
        def kill() -> None:
            if self.error is not None:
                raise self.error(pid)
            self.killed.append(pid)

        return SimpleNamespace(pid=pid, kill=kill)


@pytest.fixture()
def kill_log(monkeypatch: pytest.MonkeyPatch) -> KillLog:
    log = KillLog()
    monkeypatch.setattr(ports_module.psutil, "Process", log)
    return log


@pytest.fixture()
def sockets(monkeypatch: pytest.MonkeyPatch):
    table: list[SimpleNamespace] = []
    monkeypatch.setattr(ports_module.psutil, "net_connections", lambda kind="inet": list(table))
    return table


@pytest.fixture()
def listening_socket() -> Iterator[socket.socket]:
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen()
    try:
        yield server
    finally:
        server.close()


def _no_sleep(_: float) -> None:
    return None


def _denied(kind: str = "inet"):
    raise psutil.AccessDenied()


def test_port_probe_detects_listener(listening_socket: socket.socket) -> None:
    port = listening_socket.getsockname()[1]
    assert port_is_reachable(port)
    listening_socket.close()
    assert not port_is_reachable(port)


def test_free_port_returns_without_killing(kill_log: KillLog, sockets) -> None:
    sockets.append(_conn(4242, 7860))
    runner = ScriptedRunner()
    reclaimer = PortReclaimer(runner, probe=lambda port: False, sleep=_no_sleep)
    reclaimer.ensure_closed(7860)
    assert kill_log.killed == []
    assert runner.calls == []


def test_free_port_is_fine_on_unsupported_platform() -> None:
    runner = ScriptedRunner(platform=Platform.OTHER)
    PortReclaimer(runner, probe=lambda port: False, sleep=_no_sleep).ensure_closed(7860)


def test_bound_port_is_killed_until_free(kill_log: KillLog, sockets) -> None:
    sockets.extend(
        [
            _conn(4242, 7860),
            _conn(4243, 7860),
            _conn(4242, 7860),
            _conn(5000, 7860, status=psutil.CONN_ESTABLISHED),
            _conn(6000, 8080),
            _conn(None, 7860),
        ]
    )
    probes = iter([True, True, False])
    runner = ScriptedRunner()
    reclaimer = PortReclaimer(runner, probe=lambda port: next(probes), sleep=_no_sleep)

    reclaimer.ensure_closed(7860)

    assert kill_log.killed == [4242, 4243, 4242, 4243]
    assert runner.calls == []


def test_kill_skips_own_process(kill_log: KillLog, sockets) -> None:
    sockets.extend([_conn(os.getpid(), 7860), _conn(99999, 7860)])
    assert PortReclaimer(ScriptedRunner()).force_kill(7860) == [99999]
    assert kill_log.killed == [99999]


def test_owner_that_already_exited_is_ignored(monkeypatch: pytest.MonkeyPatch, sockets) -> None:
    monkeypatch.setattr(ports_module.psutil, "Process", KillLog(error=psutil.NoSuchProcess))
    sockets.append(_conn(4242, 7860))
    assert PortReclaimer(ScriptedRunner()).force_kill(7860) == [4242]


def test_kill_refused_by_os_raises(monkeypatch: pytest.MonkeyPatch, sockets) -> None:
    monkeypatch.setattr(ports_module.psutil, "Process", KillLog(error=psutil.AccessDenied))
    sockets.append(_conn(1, 7860))
    with pytest.raises(KillFailed, match="Not permitted to kill PID 1 on port 7860"):
        PortReclaimer(ScriptedRunner()).force_kill(7860)


def test_port_that_never_frees_raises(kill_log: KillLog, sockets) -> None:
    sockets.append(_conn(4242, 7860))
    sleeps: list[float] = []
    reclaimer = PortReclaimer(ScriptedRunner(), probe=lambda port: True, sleep=sleeps.append)
    with pytest.raises(PortStillBound) as excinfo:
        reclaimer.ensure_closed(7860)
    assert str(excinfo.value) == (
        "Port 7860 is still serving requests. Please close IndexTTS2 manually."
    )
    assert sleeps == [0.3] * 5
    assert kill_log.killed == [4242] * 5


def test_bound_port_on_unknown_platform_is_unsupported(kill_log: KillLog) -> None:
    runner = ScriptedRunner(platform=Platform.OTHER)
    reclaimer = PortReclaimer(runner, probe=lambda port: True, sleep=_no_sleep)
    with pytest.raises(UnsupportedPlatform):
        reclaimer.ensure_closed(7860)
    assert runner.calls == []
    assert kill_log.killed == []


def test_unreadable_socket_table_falls_back_to_lsof(
    monkeypatch: pytest.MonkeyPatch, kill_log: KillLog
) -> None:
    monkeypatch.setattr(ports_module.psutil, "net_connections", _denied)
    runner = ScriptedRunner(stdout="4242\n4243\n", platform=Platform.MACOS)
    assert PortReclaimer(runner).force_kill(7860) == [4242, 4243]
    assert runner.calls[0].argv == ["lsof", "-nP", "-t", "-iTCP:7860", "-sTCP:LISTEN"]
    assert kill_log.killed == [4242, 4243]


def test_unreadable_socket_table_on_windows_asks_powershell(
    monkeypatch: pytest.MonkeyPatch, kill_log: KillLog
) -> None:
    monkeypatch.setattr(ports_module.psutil, "net_connections", _denied)
    runner = ScriptedRunner(stdout="1234\r\n", platform=Platform.WINDOWS)
    assert PortReclaimer(runner).force_kill(7860) == [1234]
    assert runner.calls[0].program == "powershell"
    assert "Get-NetTCPConnection -LocalPort 7860" in runner.calls[0].args[-1]


def test_missing_lookup_tool_is_unsupported(
    monkeypatch: pytest.MonkeyPatch, kill_log: KillLog
) -> None:
    monkeypatch.setattr(ports_module.psutil, "net_connections", _denied)
    runner = MissingToolRunner()
    reclaimer = PortReclaimer(runner, probe=lambda port: True, sleep=_no_sleep)
    with pytest.raises(UnsupportedPlatform) as excinfo:
        reclaimer.ensure_closed(7860)
    assert "Failed to start lsof" in str(excinfo.value)
    assert "port 7860" in str(excinfo.value)
    assert kill_log.killed == []


def test_real_listener_in_child_process_is_reclaimed() -> None:
    listener = subprocess.Popen(
        [
            sys.executable,
            "-c",
            "import socket, time\n"
            "s = socket.socket()\n"
            "s.bind(('127.0.0.1', 0))\n"
            "s.listen()\n"
            "print(s.getsockname()[1], flush=True)\n"
            "time.sleep(60)\n",
        ],
        stdout=subprocess.PIPE,
        text=True,
    )
    try:
        port = int(listener.stdout.readline())
        assert port_is_reachable(port)
        PortReclaimer(CommandRunner(), delay=0.2).ensure_closed(port)
        assert not port_is_reachable(port)
        assert listener.wait(timeout=5) != 0
    finally:
        if listener.poll() is None:
            listener.kill()
            listener.wait()
        listener.stdout.close()


def test_parse_pids_ignores_noise() -> None:
    assert _parse_pids("123\n\nabc\n456\r\n123\n0\n") == [123, 456]
