"""
Pipeline orchestration.

A ``Pipeline`` owns the watch set and the registered workflows. Starting
it opens an event source and returns a ``PipelineRun``, the live handle
that owns the batcher thread, the rescan workers and the dispatch loop
until it is stopped.
"""

from __future__ import annotations

import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import Callable, TextIO

from loguru import logger

from watchflow.models.errors import SetupError
from watchflow.models.schemas import EventSource, PipelineState, RawEvent, Workflow
from watchflow.pipeline.batcher import CLOSED, Batcher
from watchflow.pipeline.dispatcher import WorkflowDispatcher
from watchflow.pipeline.source import WatchdogEventSource
from watchflow.pipeline.watchset import WatchSet
from watchflow.utils.config import Settings, get_settings
from watchflow.utils.sinks import SyncWriter, as_sync_writer

STOP_TIMEOUT = 5.0  # seconds to wait for the batcher thread


class PipelineRun:
    """Live resources of a running pipeline."""

    def __init__(self, pipeline: Pipeline, source: EventSource):
        self.pipeline = pipeline
        self.source = source

        self.batcher = Batcher(source.events, interval=pipeline.batch_interval)
        self.dispatcher = WorkflowDispatcher(
            pipeline.workflows,
            out=pipeline.out,
            err=pipeline.err,
            verbose=pipeline.verbose,
        )
        self.executor = ThreadPoolExecutor(
            max_workers=pipeline.rescan_workers,
            thread_name_prefix=f"{pipeline.name}-rescan",
        )
        self.done = threading.Event()
        self.stop_lock = threading.Lock()
        self.stopped = False
        self.dispatch_thread: threading.Thread | None = None

        self.batcher_thread = threading.Thread(
            target=self.batcher.run,
            name=f"{pipeline.name}-batcher",
            daemon=True,
        )
        self.batcher_thread.start()

        for path in pipeline.watchset.attach(source):
            if pipeline.verbose:
                pipeline.out.writeln(f"Watching {path}")

    @property
    def running(self) -> bool:
        return not self.done.is_set()

    def serve(self) -> None:
        """Dispatch loop. Blocks until the run is stopped."""
        logger.info(f"Pipeline {self.pipeline.name} running")
        try:
            while True:
                batch = self.batcher.batches.get()
                if batch is CLOSED or self.batcher.stopped:
                    break
                for event in batch:
                    self.executor.submit(self._rescan, event)
                    self.dispatcher.dispatch(event)
        finally:
            self.executor.shutdown(wait=False)
            self.done.set()
            logger.info(f"Pipeline {self.pipeline.name} dispatch loop exited")

    def serve_in_background(self) -> None:
        """Run the dispatch loop on its own thread."""
        self.dispatch_thread = threading.Thread(
            target=self.serve,
            name=f"{self.pipeline.name}-dispatch",
            daemon=True,
        )
        self.dispatch_thread.start()

    def stop(self) -> None:
        """
        Stop intake of new events and release the event source.

        Workflow runs already in progress are not interrupted.
        """
        with self.stop_lock:
            if self.stopped:
                return
            self.stopped = True

        self.batcher.stop()
        self.batcher_thread.join(timeout=STOP_TIMEOUT)
        if self.batcher_thread.is_alive():
            logger.warning(f"Batcher for {self.pipeline.name} did not exit in {STOP_TIMEOUT}s")

        self.pipeline.watchset.detach()
        try:
            self.source.close()
        except Exception as e:
            logger.error(f"Error closing event source: {e}")

        self.pipeline.state = PipelineState.STOPPED
        logger.info(f"Pipeline {self.pipeline.name} stopped")

    def wait(self, timeout: float | None = None) -> bool:
        """
        Block until the dispatch loop has exited.

        Returns:
            True if the loop exited within ``timeout``
        """
        return self.done.wait(timeout)

    def _rescan(self, event: RawEvent) -> None:
        try:
            self.pipeline.watchset.rescan(event)
        except Exception:
            logger.exception(f"Rescan failed for {event}")


class Pipeline:
    """Watches directories and runs matching workflows on changes."""

    def __init__(self, name: str | None = None,
                 verbose: bool | None = None,
                 out: TextIO | SyncWriter | None = None,
                 err: TextIO | SyncWriter | None = None,
                 batch_interval: float | None = None,
                 source_factory: Callable[[], EventSource] | None = None,
                 settings: Settings | None = None):
        """
        Initialize pipeline.

        Unset arguments fall back to ``Settings``.

        Args:
            name: Pipeline name used in messages
            verbose: Report watches and events on the output sink
            out: Output sink (default stdout)
            err: Error sink (default stderr)
            batch_interval: Coalescing window in seconds
            source_factory: Creates the event source at start
            settings: Settings to use instead of the cached ones
        """
        settings = settings or get_settings()

        self.name = name or settings.pipeline_name
        self.verbose = settings.verbose if verbose is None else verbose
        self.out = as_sync_writer(out if out is not None else sys.stdout)
        self.err = as_sync_writer(err if err is not None else sys.stderr)
        self.batch_interval = batch_interval or settings.batch_interval
        self.rescan_workers = settings.rescan_workers
        self.source_factory = source_factory or partial(
            WatchdogEventSource,
            use_polling=settings.use_polling,
            poll_interval=settings.poll_interval,
        )

        self.workflows: list[Workflow] = []
        self.watchset = WatchSet(settings.get_search_paths(), out=self.out, verbose=self.verbose)

        self.state = PipelineState.CONFIGURED
        self.current_run: PipelineRun | None = None
        self.lock = threading.Lock()

    @property
    def watches(self) -> list[str]:
        return self.watchset.snapshot()

    @property
    def recursive_roots(self) -> dict[str, bool]:
        with self.watchset.lock:
            return dict(self.watchset.recursive_roots)

    def watch(self, path: str | Path) -> str:
        """
        Watch a single directory.

        Returns:
            Resolved absolute path

        Raises:
            ResolutionError: If the path cannot be resolved
        """
        return self.watchset.add(path)

    def watch_recursive(self, path: str | Path, ignore_hidden: bool = True) -> str:
        """
        Watch a directory tree, including directories created later.

        Raises:
            ResolutionError: If the path cannot be resolved
        """
        return self.watchset.add_recursive(path, ignore_hidden)

    def add(self, *workflows: Workflow) -> None:
        """Register one or more workflows."""
        self.workflows.extend(workflows)

    def run(self) -> None:
        """
        Start the pipeline and dispatch events in the calling thread.

        Blocks until ``stop`` is called from another thread. Returns
        immediately if the event source cannot be set up.
        """
        try:
            current = self._open()
        except SetupError as e:
            logger.error(f"Pipeline {self.name} failed to start: {e}")
            return
        current.serve()

    def start(self) -> PipelineRun:
        """
        Start the pipeline with the dispatch loop on a background thread.

        Returns:
            Handle used to stop or wait for the run

        Raises:
            SetupError: If the event source cannot be set up
        """
        try:
            current = self._open()
        except SetupError as e:
            logger.error(f"Pipeline {self.name} failed to start: {e}")
            raise
        current.serve_in_background()
        return current

    def stop(self) -> None:
        """Stop the current run."""
        current = self.current_run
        if current is None:
            logger.warning(f"Pipeline {self.name} is not running")
            return
        current.stop()

    def _open(self) -> PipelineRun:
        with self.lock:
            if self.state is not PipelineState.CONFIGURED:
                raise RuntimeError(f"Pipeline {self.name} cannot start while {self.state.value}")

            if len(self.watchset) < 1:
                logger.warning(f"Pipeline {self.name} is not watching anything")
            if len(self.workflows) < 1:
                logger.warning(f"Pipeline {self.name} has no workflows")

            try:
                source = self.source_factory()
            except SetupError:
                raise
            except Exception as e:
                raise SetupError(f"Failed to create event source: {e}") from e

            current = PipelineRun(self, source)
            self.current_run = current
            self.state = PipelineState.RUNNING

        return current
