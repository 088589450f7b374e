import queue
import time

import pytest

from watchflow.models.schemas import Op, RawEvent
from watchflow.utils.config import Settings


class FakeEventSource:
    """In-memory event source recording subscriptions."""

    def __init__(self):
        self.events = queue.Queue()
        self.subscribed: list[str] = []
        self.closed = False

    def subscribe(self, path: str) -> None:
        self.subscribed.append(path)

    def close(self) -> None:
        self.closed = True

    def emit(self, path, op: Op) -> None:
        self.events.put(RawEvent(str(path), op))


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def fake_source() -> FakeEventSource:
    return FakeEventSource()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        pipeline_name="test",
        batch_interval=0.05,
        verbose=False,
        search_paths="",
        rescan_workers=2,
        _env_file=None,
    )
