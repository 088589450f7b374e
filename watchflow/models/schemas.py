"""
Data models for watchflow.

Shared types passed between the event source, the batcher, the
dispatcher and external workflows/tasks.
"""

from __future__ import annotations

import io
import queue
from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Iterable, Protocol, runtime_checkable

from watchflow.utils.sinks import SyncWriter


# =====================================================
# Events
# =====================================================

class Op(IntFlag):
    """Filesystem operation bitmask."""

    CREATE = 1
    WRITE = 2
    REMOVE = 4
    RENAME = 8
    CHMOD = 16

    DIR_OPS = CREATE | RENAME
    ALL = CREATE | WRITE | REMOVE | RENAME | CHMOD

    @property
    def label(self) -> str:
        """Human readable form, e.g. ``CREATE|RENAME``."""
        names = [op.name for op in BASIC_OPS if op & self]
        return "|".join(names) if names else "NONE"

    @classmethod
    def parse(cls, names: str | Iterable[str]) -> Op:
        """
        Build an operation mask from names.

        Args:
            names: Comma separated string or iterable of names (case-insensitive)

        Returns:
            Combined operation mask

        Raises:
            ValueError: If a name is not a known operation
        """
        if isinstance(names, str):
            names = names.split(",")

        result = cls(0)
        for name in names:
            name = name.strip().upper()
            if not name:
                continue
            try:
                result |= cls[name]
            except KeyError:
                raise ValueError(f"Unknown operation: {name}") from None
        return result


BASIC_OPS = (Op.CREATE, Op.WRITE, Op.REMOVE, Op.RENAME, Op.CHMOD)


@dataclass(frozen=True, slots=True)
class RawEvent:
    """A single filesystem event as reported by the event source."""

    path: str
    op: Op

    @property
    def is_dir_op(self) -> bool:
        """True when the operation is made only of create/rename bits."""
        return bool(self.op) and self.op & Op.DIR_OPS == self.op

    def __str__(self) -> str:
        return f"{self.op.label}: {self.path}"


# =====================================================
# Task Execution
# =====================================================

@dataclass
class TaskContext:
    """
    Per-dispatch record threaded through a workflow's task chain.

    ``target`` starts empty; each task sets it to the path of what it
    produced so the next task in the chain can pick it up.
    """

    src: str
    out: SyncWriter
    err: SyncWriter
    verbose: bool = False
    target: str = ""
    buf: io.BytesIO = field(default_factory=io.BytesIO)

    def reset_buffer(self) -> None:
        """Empty the scratch buffer."""
        self.buf.seek(0)
        self.buf.truncate()

    def flush_buffer(self) -> None:
        """Write the scratch buffer to the output sink and empty it."""
        data = self.buf.getvalue()
        if data:
            self.out.write(data.decode("utf-8", errors="replace"))
        self.reset_buffer()


@runtime_checkable
class Task(Protocol):
    """One unit of work in a workflow's task chain."""

    def run(self, ctx: TaskContext) -> None:
        ...


@runtime_checkable
class Workflow(Protocol):
    """A match predicate plus the task chain it triggers."""

    def match(self, path: str, op: Op) -> bool:
        ...

    def run(self, ctx: TaskContext) -> None:
        ...


class EventSource(Protocol):
    """OS-level notifier feeding raw events into a queue."""

    events: queue.Queue

    def subscribe(self, path: str) -> None:
        ...

    def close(self) -> None:
        ...


# =====================================================
# Lifecycle
# =====================================================

class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    CONFIGURED = "configured"
    RUNNING = "running"
    STOPPED = "stopped"
