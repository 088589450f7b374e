"""
Watchdog-backed event source.

Every subscription is a non-recursive watch on a single directory; the
watch set takes care of recursion. Watchdog events are translated into
``RawEvent``s and pushed onto ``events`` for the batcher to drain.
"""

import os
import queue
import threading

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from watchflow.models.errors import SetupError
from watchflow.models.schemas import Op, RawEvent


class QueueingEventHandler(FileSystemEventHandler):
    """Watchdog handler that converts events into ``RawEvent``s."""

    def __init__(self, events: queue.Queue):
        """
        Initialize event handler.

        Args:
            events: Queue receiving translated events
        """
        super().__init__()
        self.events = events

    def on_created(self, event: FileSystemEvent):
        self._emit(event.src_path, Op.CREATE)

    def on_modified(self, event: FileSystemEvent):
        # Directory modifications only echo changes to their entries,
        # which are reported on their own
        if event.is_directory:
            return
        self._emit(event.src_path, Op.WRITE)

    def on_deleted(self, event: FileSystemEvent):
        self._emit(event.src_path, Op.REMOVE)

    def on_moved(self, event: FileSystemEvent):
        # Old name is renamed away, new name shows up as created
        self._emit(event.src_path, Op.RENAME)
        dest = getattr(event, "dest_path", None)
        if dest:
            self._emit(dest, Op.CREATE)

    def _emit(self, path, op: Op):
        self.events.put(RawEvent(os.fsdecode(path), op))


class WatchdogEventSource:
    """Event source with per-directory, non-recursive watchdog subscriptions."""

    def __init__(self, use_polling: bool = False, poll_interval: float = 1.0):
        """
        Create and start the underlying observer.

        Args:
            use_polling: Use polling instead of OS events
            poll_interval: Polling interval in seconds

        Raises:
            SetupError: If the observer cannot be started
        """
        self.events: queue.Queue = queue.Queue()
        self.handler = QueueingEventHandler(self.events)
        self.lock = threading.Lock()
        self.watches = {}
        self.closed = False

        try:
            if use_polling:
                self.observer = PollingObserver(timeout=poll_interval)
                logger.debug(f"Using polling observer (interval: {poll_interval}s)")
            else:
                self.observer = Observer()
                logger.debug("Using OS event observer")
            self.observer.daemon = True
            self.observer.start()
        except Exception as e:
            raise SetupError(f"Failed to start file system observer: {e}") from e

    def subscribe(self, path: str) -> None:
        """
        Watch the immediate contents of ``path``.

        Raises:
            OSError: If the path cannot be watched
        """
        with self.lock:
            if self.closed or path in self.watches:
                return
            self.watches[path] = self.observer.schedule(self.handler, path, recursive=False)
        logger.debug(f"Subscribed: {path}")

    def close(self) -> None:
        """Stop the observer. Safe to call more than once."""
        with self.lock:
            if self.closed:
                return
            self.closed = True
            self.watches.clear()

        try:
            self.observer.stop()
            self.observer.join(timeout=10)
        except Exception as e:
            logger.error(f"Error stopping observer: {e}")

        logger.debug("Event source closed")
