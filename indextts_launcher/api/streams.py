"""In-memory log fan-out that backs the UI event channel."""

from __future__ import annotations

import asyncio
from asyncio import AbstractEventLoop
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from threading import Lock

from indextts_launcher.runner import StreamLine

SERVER_CHANNEL = "server"
OPERATIONS_CHANNEL = "operations"
CHANNELS = (SERVER_CHANNEL, OPERATIONS_CHANNEL)


@dataclass(slots=True)
class LogEvent:
    step: str | None
    stream: str
    line: str
    timestamp: datetime

    def as_dict(self) -> dict[str, str | None]:
        return {
            "step": self.step,
            "stream": self.stream,
            "line": self.line,
            "timestamp": self.timestamp.isoformat(),
        }


class LogManager:
    """Keep bounded per-channel history and push new events to subscribers."""

    def __init__(self, history_size: int = 2000) -> None:
        self._history: dict[str, deque[LogEvent]] = defaultdict(
            lambda: deque(maxlen=history_size)
        )
        self._subscribers: dict[
            str, list[tuple[asyncio.Queue[LogEvent | None], AbstractEventLoop]]
        ] = defaultdict(list)
        self._lock = Lock()

    def append(self, channel: str, line: StreamLine) -> LogEvent:
        event = LogEvent(
            step=line.step, stream=line.stream, line=line.text, timestamp=datetime.now(UTC)
        )
        with self._lock:
            self._history[channel].append(event)
            subscribers = list(self._subscribers.get(channel, []))
        for queue, loop in subscribers:
            if not loop.is_closed():
                loop.call_soon_threadsafe(queue.put_nowait, event)
        return event

    def history(self, channel: str) -> list[LogEvent]:
        with self._lock:
            return list(self._history.get(channel, ()))

    def subscribe_with_history(
        self, channel: str
    ) -> tuple[asyncio.Queue[LogEvent | None], AbstractEventLoop, Callable[[], None], list[LogEvent]]:
        """Register a subscriber and snapshot history atomically, so no event is lost."""

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[LogEvent | None] = asyncio.Queue()
        with self._lock:
            history = list(self._history.get(channel, ()))
            self._subscribers[channel].append((queue, loop))

        def _unsubscribe() -> None:
            with self._lock:
                subscribers = self._subscribers.get(channel)
                if subscribers and (queue, loop) in subscribers:
                    subscribers.remove((queue, loop))
            if not loop.is_closed():
                loop.call_soon_threadsafe(queue.put_nowait, None)

        return queue, loop, _unsubscribe, history

    def sink(self, channel: str) -> ChannelSink:
        return ChannelSink(self, channel)


class ChannelSink:
    """A :class:`~indextts_launcher.runner.Sink` that publishes into one channel."""

    def __init__(self, manager: LogManager, channel: str) -> None:
        self.manager = manager
        self.channel = channel

    def emit(self, line: StreamLine) -> None:
        self.manager.append(self.channel, line)


__all__ = [
    "CHANNELS",
    "OPERATIONS_CHANNEL",
    "SERVER_CHANNEL",
    "ChannelSink",
    "LogEvent",
    "LogManager",
]
