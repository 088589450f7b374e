"""
Workflow matching and dispatch.

Every event is offered to each registered workflow in registration
order; each match runs that workflow with a fresh task context. A
failing or misbehaving workflow never stops dispatch of the remaining
workflows or events.
"""

from typing import Sequence

from loguru import logger

from watchflow.models.errors import TaskError
from watchflow.models.schemas import RawEvent, TaskContext, Workflow
from watchflow.utils.sinks import SyncWriter


class WorkflowDispatcher:
    """Runs matching workflows for each event."""

    def __init__(self, workflows: Sequence[Workflow],
                 out: SyncWriter,
                 err: SyncWriter,
                 verbose: bool = False):
        """
        Initialize dispatcher.

        Args:
            workflows: Registered workflows (read at dispatch time)
            out: Shared output sink
            err: Shared error sink
            verbose: Report every dispatched event on ``out``
        """
        self.workflows = workflows
        self.out = out
        self.err = err
        self.verbose = verbose

    def dispatch(self, event: RawEvent) -> int:
        """
        Run every workflow that matches ``event``.

        Args:
            event: Event to dispatch

        Returns:
            Number of workflows that matched
        """
        if self.verbose:
            self.out.writeln("Watcher event", event.path, event.op.label)

        matched = 0
        for workflow in list(self.workflows):
            try:
                if not workflow.match(event.path, event.op):
                    continue
                matched += 1
                workflow.run(self.new_context(event))
            except TaskError as e:
                # already reported on the sinks by the task chain
                logger.debug(f"Workflow {workflow!r} failed for {event.path}: {e}")
            except Exception:
                logger.exception(f"Workflow {workflow!r} raised while handling {event}")

        return matched

    def dispatch_batch(self, batch: Sequence[RawEvent]) -> None:
        """Dispatch the events of one batch in arrival order."""
        for event in batch:
            self.dispatch(event)

    def new_context(self, event: RawEvent) -> TaskContext:
        return TaskContext(
            src=event.path,
            out=self.out,
            err=self.err,
            verbose=self.verbose,
        )
