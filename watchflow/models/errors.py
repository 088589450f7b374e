"""
Exception types for watchflow.

Resolution failures surface to whoever registered the watch, task
failures are reported through the pipeline sinks, and setup failures end
the start attempt.
"""

from pathlib import Path


class WatchflowError(Exception):
    """Base class for all watchflow errors."""


class ResolutionError(WatchflowError):
    """A watch path could not be resolved to an existing absolute path."""

    def __init__(self, path: str | Path, reason: str = "cannot resolve path"):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"{reason}: {self.path}")


class TaskError(WatchflowError):
    """An external task failed."""

    def __init__(self, message: str, returncode: int | None = None):
        self.returncode = returncode
        super().__init__(message)


class SetupError(WatchflowError):
    """The event source could not be initialised."""
