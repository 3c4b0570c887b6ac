"""Base error type shared by LogForge packages."""

from __future__ import annotations


class LogForgeError(Exception):
    """Base class for errors raised by the ingest pipeline."""
