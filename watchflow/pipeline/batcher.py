"""
Time-windowed event coalescing.

Raw events are accumulated in arrival order and released as one batch
per tick. Empty windows produce nothing. Once stopped, the batcher emits
no further batches, including whatever is left in the current window.
"""

import queue
import threading
import time
from typing import Callable

from loguru import logger

from watchflow.models.schemas import RawEvent

DEFAULT_INTERVAL = 0.3  # seconds

# Put on the batch queue when the batcher exits
CLOSED = None

# Put on the event queue by stop() to wake a blocked loop
WAKEUP = object()


class Batcher:
    """Drains an event queue and emits one batch per non-empty tick."""

    def __init__(self, events: queue.Queue,
                 batches: queue.Queue | None = None,
                 interval: float = DEFAULT_INTERVAL,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize batcher.

        Args:
            events: Queue of raw events to drain
            batches: Queue receiving batches (created if omitted)
            interval: Coalescing window in seconds
            clock: Monotonic time source
        """
        if interval <= 0:
            raise ValueError("Batch interval must be positive")

        self.events = events
        self.batches: queue.Queue = batches if batches is not None else queue.Queue()
        self.interval = interval
        self.clock = clock

        self.pending: list[RawEvent] = []
        self.stop_event = threading.Event()
        self.stats = {
            'events_received': 0,
            'batches_emitted': 0,
        }

    def add(self, event: RawEvent) -> None:
        """Append an event to the current window."""
        self.pending.append(event)
        self.stats['events_received'] += 1

    def tick(self) -> list[RawEvent] | None:
        """
        Close the current window.

        Returns:
            The emitted batch, or None if the window was empty
        """
        if not self.pending:
            return None

        batch, self.pending = self.pending, []
        self.batches.put(batch)
        self.stats['batches_emitted'] += 1
        logger.debug(f"Emitted batch of {len(batch)} events")
        return batch

    def run(self) -> None:
        """Batching loop. Returns once ``stop`` has been called."""
        logger.debug(f"Batcher started (interval={self.interval}s)")
        next_tick = self.clock() + self.interval

        try:
            while not self.stop_event.is_set():
                now = self.clock()
                if now >= next_tick:
                    self.tick()
                    next_tick += self.interval
                    if next_tick <= now:
                        next_tick = now + self.interval
                    continue

                try:
                    event = self.events.get(timeout=next_tick - now)
                except queue.Empty:
                    continue

                if event is WAKEUP or self.stop_event.is_set():
                    continue
                self.add(event)
        finally:
            self.pending = []
            self.batches.put(CLOSED)
            logger.debug("Batcher stopped")

    def stop(self) -> None:
        """Signal the loop to exit."""
        self.stop_event.set()
        self.events.put(WAKEUP)

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()
