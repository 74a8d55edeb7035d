"""Process spawning, log streaming, step running, and server supervision."""

from .command import CommandResult, CommandRunner, CommandSpec, Platform
from .log_stream import (
    STDERR,
    STDOUT,
    CallbackSink,
    CollectingSink,
    LineSplitter,
    LogFileSink,
    NullSink,
    Sink,
    StderrAccumulator,
    StreamForwarder,
    StreamLine,
    TeeSink,
)
from .ports import PortReclaimer, port_is_reachable
from .steps import StepResult, StepRunner
from .supervisor import DEFAULT_SERVER_PORT, ServerStatus, ServerSupervisor

__all__ = [
    "DEFAULT_SERVER_PORT",
    "STDERR",
    "STDOUT",
    "CallbackSink",
    "CollectingSink",
    "CommandResult",
    "CommandRunner",
    "CommandSpec",
    "LineSplitter",
    "LogFileSink",
    "NullSink",
    "Platform",
    "PortReclaimer",
    "ServerStatus",
    "ServerSupervisor",
    "Sink",
    "StderrAccumulator",
    "StepResult",
    "StepRunner",
    "StreamForwarder",
    "StreamLine",
    "TeeSink",
    "port_is_reachable",
]
