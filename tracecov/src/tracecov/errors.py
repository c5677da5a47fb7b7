"""Error taxonomy for tracecov."""

from __future__ import annotations

from typing import Optional


class TracecovError(Exception):
    """Base class for all tracecov errors."""


class InputNotFound(TracecovError, FileNotFoundError):
    """A catalog file is missing. Fatal for the service being analyzed."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class MalformedInput(TracecovError, ValueError):
    """A catalog or baseline could not be parsed. Fatal for that service only."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class MatcherUnavailable(TracecovError, RuntimeError):
    """The semantic matcher failed (network, auth, timeout, bad response)."""


class CacheCorruption(TracecovError, RuntimeError):
    """A cache entry failed its integrity check."""


class AnalysisCancelled(TracecovError):
    """Analysis was aborted between API iterations."""
