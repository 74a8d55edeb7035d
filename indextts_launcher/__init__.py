"""Installer and launcher for a local IndexTTS2 server."""

from .version import __version__  # noqa: F401
