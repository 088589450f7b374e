"""Regex-matched workflows running an ordered task chain."""

import re
from typing import Iterable

from watchflow.models.schemas import Op, Task, TaskContext


class PatternWorkflow:
    """
    Runs its tasks when a changed path matches one of its patterns.

    Tasks run in order. After each task the context's source becomes that
    task's target, so a task can hand a derived artifact to the next one.
    The chain stops at the first failure, which is reported on the error
    sink and re-raised.
    """

    def __init__(self, name: str, patterns: Iterable[str],
                 tasks: Iterable[Task] = (),
                 ops: Op = Op.ALL):
        """
        Initialize workflow.

        Args:
            name: Label used in failure messages
            patterns: Regular expressions searched in the changed path
            tasks: Task chain
            ops: Operations that may trigger the workflow

        Raises:
            re.error: If a pattern is not a valid regular expression
        """
        self.name = name
        self.patterns = [re.compile(p) for p in patterns]
        self.tasks: list[Task] = list(tasks)
        self.ops = ops

    def add(self, *tasks: Task) -> None:
        """Append tasks to the chain."""
        self.tasks.extend(tasks)

    def match(self, path: str, op: Op) -> bool:
        if not op & self.ops:
            return False
        return any(p.search(path) for p in self.patterns)

    def run(self, ctx: TaskContext) -> None:
        for task in self.tasks:
            try:
                task.run(ctx)
            except Exception as e:
                ctx.err.writeln(f"{self.name}: {e}")
                raise
            if ctx.target:
                ctx.src = ctx.target

    def __repr__(self) -> str:
        return f"PatternWorkflow({self.name!r})"
