"""Run named steps and attribute their streamed output."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass

from indextts_launcher.errors import StepFailed
from indextts_launcher.runner.command import CommandRunner, CommandSpec
from indextts_launcher.runner.log_stream import (
    STDERR,
    STDOUT,
    Sink,
    StderrAccumulator,
    StreamForwarder,
)

__all__ = ["EMPTY_STDERR_PLACEHOLDER", "StepResult", "StepRunner"]

logger = logging.getLogger(__name__)

EMPTY_STDERR_PLACEHOLDER = "no additional output. Please check the logs."


@dataclass(slots=True)
class StepResult:
    """Outcome of one named step."""

    step: str
    exit_code: int
    duration: float
    stderr: str | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class StepRunner:
    """Drive :class:`CommandRunner` in streaming mode, one named step at a time."""

    def __init__(self, runner: CommandRunner, sink: Sink) -> None:
        self.runner = runner
        self.sink = sink

    def run_step(self, step: str, spec: CommandSpec, *, check: bool = True) -> StepResult:
        """Run ``spec`` to completion.

        A non-zero exit raises :class:`StepFailed` carrying the accumulated
        stderr, unless ``check`` is false, in which case the failed
        :class:`StepResult` is returned instead.
        """

        logger.info("step.start %s: %s", step, spec.display())
        started = time.monotonic()
        process = self.runner.spawn(spec)
        accumulator = StderrAccumulator()
        forwarders: list[StreamForwarder] = []
        if process.stdout is not None:
            forwarders.append(
                StreamForwarder(process.stdout, STDOUT, self.sink, step=step).start()
            )
        if process.stderr is not None:
            forwarders.append(
                StreamForwarder(
                    process.stderr, STDERR, self.sink, step=step, accumulator=accumulator
                ).start()
            )
        try:
            exit_code = process.wait()
        finally:
            for forwarder in forwarders:
                forwarder.join()
        duration = time.monotonic() - started
        if exit_code != 0:
            excerpt = accumulator.joined() or EMPTY_STDERR_PLACEHOLDER
            logger.warning("step.failed %s exit=%s after %.1fs", step, exit_code, duration)
            if check:
                raise StepFailed(step, excerpt, exit_code)
            return StepResult(step=step, exit_code=exit_code, duration=duration, stderr=excerpt)
        logger.info("step.done %s in %.1fs", step, duration)
        return StepResult(step=step, exit_code=exit_code, duration=duration)

    def run_steps(self, steps: Iterable[tuple[str, CommandSpec]]) -> list[StepResult]:
        """Run steps in order and stop at the first failure."""

        results: list[StepResult] = []
        for step, spec in steps:
            results.append(self.run_step(step, spec))
        return results
