"""Incremental line splitting and forwarding of child-process output."""

from __future__ import annotations

import codecs
import logging
import re
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import BinaryIO, Protocol, runtime_checkable

__all__ = [
    "STDERR",
    "STDOUT",
    "CallbackSink",
    "CollectingSink",
    "LineSplitter",
    "LogFileSink",
    "NullSink",
    "Sink",
    "StderrAccumulator",
    "StreamForwarder",
    "StreamLine",
    "TeeSink",
]

logger = logging.getLogger(__name__)

STDOUT = "stdout"
STDERR = "stderr"

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True, slots=True)
class StreamLine:
    """One logical line of process output."""

    stream: str
    text: str
    step: str | None = None

    def to_event(self) -> dict[str, str | None]:
        return {"step": self.step, "stream": self.stream, "line": self.text}


@runtime_checkable
class Sink(Protocol):
    """Consumer of streamed log lines."""

    def emit(self, line: StreamLine) -> None: ...


class NullSink:
    """Discard every line."""

    def emit(self, line: StreamLine) -> None:
        return None


class CallbackSink:
    def __init__(self, callback: Callable[[StreamLine], None]) -> None:
        self._callback = callback

    def emit(self, line: StreamLine) -> None:
        self._callback(line)


class CollectingSink:
    """Keep every emitted line in memory (thread-safe)."""

    def __init__(self) -> None:
        self._lines: list[StreamLine] = []
        self._lock = Lock()

    def emit(self, line: StreamLine) -> None:
        with self._lock:
            self._lines.append(line)

    @property
    def lines(self) -> list[StreamLine]:
        with self._lock:
            return list(self._lines)

    def texts(self, stream: str | None = None) -> list[str]:
        return [line.text for line in self.lines if stream is None or line.stream == stream]


class TeeSink:
    """Forward each line to several sinks in order."""

    def __init__(self, sinks: Iterable[Sink]) -> None:
        self._sinks = list(sinks)

    def emit(self, line: StreamLine) -> None:
        for sink in self._sinks:
            sink.emit(line)


class LogFileSink:
    """Append lines to a log file on disk."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self.path.open("a", encoding="utf-8")
        self._lock = Lock()

    def __enter__(self) -> LogFileSink:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def emit(self, line: StreamLine) -> None:
        prefix = f"[{line.step}] " if line.step else ""
        with self._lock:
            if self._handle.closed:
                return
            self._handle.write(f"{prefix}{line.stream}: {line.text}\n")
            self._handle.flush()

    def close(self) -> None:
        with self._lock:
            if not self._handle.closed:
                self._handle.close()


class StderrAccumulator:
    """Lock-protected buffer of non-empty stderr lines for one step."""

    def __init__(self) -> None:
        self._lines: list[str] = []
        self._lock = Lock()

    def append(self, text: str) -> None:
        if not text:
            return
        with self._lock:
            self._lines.append(text)

    @property
    def lines(self) -> list[str]:
        with self._lock:
            return list(self._lines)

    def joined(self) -> str:
        return "\n".join(self.lines)


class LineSplitter:
    """Decode bytes incrementally and split them into logical lines.

    ``\\r\\n``, ``\\r`` and ``\\n`` all count as one break, including a
    ``\\r\\n`` pair split across two reads. Invalid UTF-8 is replaced.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._pending_cr = False

    def feed(self, data: bytes) -> list[str]:
        return self._split(self._decoder.decode(data))

    def close(self) -> list[str]:
        lines = self._split(self._decoder.decode(b"", final=True))
        if self._buffer:
            lines.append(self._buffer)
            self._buffer = ""
        return lines

    def _split(self, text: str) -> list[str]:
        if not text:
            return []
        if self._pending_cr and text.startswith("\n"):
            text = text[1:]
        self._pending_cr = text.endswith("\r")
        parts = _LINE_BREAK.split(self._buffer + text)
        self._buffer = parts.pop()
        return parts


class StreamForwarder:
    """Drain one binary stream on its own thread and forward complete lines.

    Blank lines never reach the sink or the accumulator. Sink failures are
    logged and do not stop the drain.
    """

    def __init__(
        self,
        source: BinaryIO,
        stream: str,
        sink: Sink,
        *,
        step: str | None = None,
        accumulator: StderrAccumulator | None = None,
        chunk_size: int = 4096,
    ) -> None:
        self.source = source
        self.stream = stream
        self.sink = sink
        self.step = step
        self.accumulator = accumulator
        self.chunk_size = chunk_size
        self._thread: threading.Thread | None = None

    def start(self) -> StreamForwarder:
        name = f"forward-{self.step or 'process'}-{self.stream}"
        self._thread = threading.Thread(target=self.run, name=name, daemon=True)
        self._thread.start()
        return self

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        splitter = LineSplitter()
        read = getattr(self.source, "read1", self.source.read)
        try:
            while True:
                try:
                    data = read(self.chunk_size)
                except (OSError, ValueError):  # pipe closed underneath us
                    break
                if not data:
                    break
                for text in splitter.feed(data):
                    self._forward(text)
        finally:
            for text in splitter.close():
                self._forward(text)
            try:
                self.source.close()
            except OSError:  # pragma: no cover - already closed
                pass

    def _forward(self, text: str) -> None:
        if not text:
            return
        if self.accumulator is not None:
            self.accumulator.append(text)
        try:
            self.sink.emit(StreamLine(stream=self.stream, text=text, step=self.step))
        except Exception:  # noqa: BLE001 - a failed notification must not stop the drain
            logger.warning("Sink rejected %s line from %s", self.stream, self.step, exc_info=True)
