"""Thread-safe output sinks shared by concurrent tasks."""

from __future__ import annotations

import threading
from typing import TextIO


class SyncWriter:
    """
    Lock-guarded wrapper around a text stream.

    Each ``write``/``writeln`` call reaches the underlying stream in one
    piece, so concurrent writers never split a line.
    """

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream
        self.lock = threading.Lock()

    def write(self, text: str) -> int:
        with self.lock:
            written = self.stream.write(text)
            self.stream.flush()
        return written

    def writeln(self, *parts: object) -> int:
        """Write space separated ``parts`` followed by a newline."""
        return self.write(" ".join(str(p) for p in parts) + "\n")

    def flush(self) -> None:
        with self.lock:
            self.stream.flush()


def as_sync_writer(stream: TextIO | SyncWriter) -> SyncWriter:
    """Wrap ``stream`` unless it already is a ``SyncWriter``."""
    if isinstance(stream, SyncWriter):
        return stream
    return SyncWriter(stream)
