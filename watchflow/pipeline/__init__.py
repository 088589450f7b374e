"""
Watch-Batch-Dispatch Engine

Keeps directory trees under watch, coalesces raw filesystem events into
fixed-interval batches and runs the workflows whose patterns match:
- watchset.py - Watched directories and recursive roots
- source.py - Watchdog-backed event source
- batcher.py - Time-windowed event coalescing
- dispatcher.py - Workflow matching and dispatch
- pipeline.py - Lifecycle and the dispatch loop
"""

from .batcher import Batcher
from .dispatcher import WorkflowDispatcher
from .pipeline import Pipeline, PipelineRun
from .source import WatchdogEventSource
from .watchset import WatchSet

__all__ = [
    "Batcher",
    "Pipeline",
    "PipelineRun",
    "WatchSet",
    "WatchdogEventSource",
    "WorkflowDispatcher",
]
