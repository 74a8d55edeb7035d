"""Local control API: operations, server lifecycle, and the log event channel."""

from .context import AppContext
from .main import create_app
from .streams import ChannelSink, LogEvent, LogManager

__all__ = ["AppContext", "ChannelSink", "LogEvent", "LogManager", "create_app"]
