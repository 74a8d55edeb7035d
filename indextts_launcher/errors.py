"""Failure taxonomy shared by the runner, provisioning, API, and CLI layers."""

from __future__ import annotations

__all__ = [
    "AlreadyRunning",
    "KillFailed",
    "LauncherError",
    "PortStillBound",
    "RepositoryError",
    "SpawnError",
    "StepFailed",
    "SupervisorBusy",
    "TerminationFailed",
    "UnsupportedPlatform",
]


class LauncherError(RuntimeError):
    """Base class for every failure surfaced to launcher callers."""


class SpawnError(LauncherError):
    """Raised when an external program cannot be launched."""

    def __init__(self, program: str, reason: str) -> None:
        super().__init__(f"Failed to start {program}: {reason}")
        self.program = program
        self.reason = reason


class StepFailed(LauncherError):
    """Raised when a named step exits with a non-zero status."""

    def __init__(self, step: str, stderr_excerpt: str, exit_code: int | None = None) -> None:
        super().__init__(f"{step} failed: {stderr_excerpt}")
        self.step = step
        self.stderr_excerpt = stderr_excerpt
        self.exit_code = exit_code


class AlreadyRunning(LauncherError):
    """Raised when a server start is requested while one is already owned."""

    def __init__(self, pid: int | None = None) -> None:
        super().__init__("Server is already running.")
        self.pid = pid


class SupervisorBusy(LauncherError):
    """Raised when a stop arrives while a start is still spawning the server."""


class TerminationFailed(LauncherError):
    """Raised when the supervised child could not be signalled."""


class PortStillBound(LauncherError):
    """Raised when a port keeps accepting connections after every reclaim attempt."""

    def __init__(self, port: int) -> None:
        super().__init__(
            f"Port {port} is still serving requests. Please close IndexTTS2 manually."
        )
        self.port = port


class KillFailed(LauncherError):
    """Raised when the OS refuses to terminate a process holding a port."""


class UnsupportedPlatform(LauncherError):
    """Raised when the current platform lacks the mechanism an operation needs."""

    def __init__(self, operation: str, platform: str, hint: str | None = None) -> None:
        message = f"{operation} is not supported on {platform}."
        if hint:
            message = f"{message} {hint}"
        super().__init__(message)
        self.operation = operation
        self.platform = platform


class RepositoryError(LauncherError):
    """Raised when the target checkout directory cannot be used."""
