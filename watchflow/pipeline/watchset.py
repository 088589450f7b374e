"""
Watched directory bookkeeping.

Holds the ordered list of watched directories and the recursive roots
that keep their subtrees under watch as directories appear. All
mutations go through one re-entrant lock, since rescans triggered by
events run on worker threads.
"""

import os
import threading
from pathlib import Path
from typing import Iterable

from loguru import logger

from watchflow.models.errors import ResolutionError
from watchflow.models.schemas import EventSource, RawEvent
from watchflow.utils.helpers import is_hidden, is_within, resolve_watch_path, walk_directories
from watchflow.utils.sinks import SyncWriter


class WatchSet:
    """Directories under watch plus the recursively managed roots."""

    def __init__(self, search_paths: Iterable[Path] = (),
                 out: SyncWriter | None = None,
                 verbose: bool = False):
        """
        Initialize watch set.

        Args:
            search_paths: Extra roots used to resolve relative paths
            out: Sink for verbose messages
            verbose: Report resolution failures on ``out``
        """
        self.search_paths = list(search_paths)
        self.out = out
        self.verbose = verbose

        self.lock = threading.RLock()
        self.targets: list[str] = []
        self.recursive_roots: dict[str, bool] = {}
        self.source: EventSource | None = None

    def add(self, path: str | Path) -> str:
        """
        Watch a single directory.

        Already watched directories are left alone. If an event source is
        attached the new directory is subscribed immediately.

        Args:
            path: Absolute path, or relative to the cwd / search paths

        Returns:
            Resolved absolute path

        Raises:
            ResolutionError: If the path cannot be resolved
        """
        try:
            resolved = str(resolve_watch_path(path, self.search_paths))
        except ResolutionError as e:
            if self.verbose and self.out is not None:
                self.out.writeln(e)
            raise

        with self.lock:
            if resolved in self.targets:
                return resolved
            self.targets.append(resolved)
            if self.source is not None:
                self._subscribe(resolved)

        return resolved

    def add_recursive(self, path: str | Path, ignore_hidden: bool) -> str:
        """
        Watch a directory and every directory below it.

        The path is remembered as a recursive root so that directories
        created later are picked up by ``rescan``. Unreadable
        subdirectories are skipped.

        Args:
            path: Root directory
            ignore_hidden: Skip hidden directories and their subtrees

        Returns:
            Resolved absolute root path

        Raises:
            ResolutionError: If the root cannot be resolved
        """
        root = resolve_watch_path(path, self.search_paths)

        with self.lock:
            self.recursive_roots[str(root)] = ignore_hidden

        count = 0
        for directory in walk_directories(root, ignore_hidden):
            try:
                self.add(directory)
                count += 1
            except ResolutionError as e:
                # vanished between listing and resolving
                logger.debug(f"Skipping directory: {e}")

        logger.info(f"Recursive watch on {root}: {count} directories")
        return str(root)

    def rescan(self, event: RawEvent) -> bool:
        """
        Pick up a directory that was created or renamed under a recursive root.

        The first root that contains the path, and whose hidden policy
        allows it, wins.

        Args:
            event: Event to inspect

        Returns:
            True if the directory was added
        """
        if not event.is_dir_op or not os.path.isdir(event.path):
            return False

        hidden = is_hidden(event.path)
        with self.lock:
            roots = list(self.recursive_roots.items())

        for root, ignore_hidden in roots:
            if hidden and ignore_hidden:
                continue
            if is_within(event.path, root):
                logger.info(f"New directory under {root}: {event.path}")
                try:
                    self.add_recursive(event.path, ignore_hidden)
                except ResolutionError as e:
                    logger.debug(f"Directory disappeared before rescan: {e}")
                    return False
                return True

        return False

    def attach(self, source: EventSource) -> list[str]:
        """
        Attach a live event source and subscribe every current target.

        Returns:
            Directories that were subscribed
        """
        with self.lock:
            self.source = source
            subscribed = [t for t in list(self.targets) if self._subscribe(t)]
        return subscribed

    def detach(self) -> None:
        """Forget the live event source."""
        with self.lock:
            self.source = None

    def snapshot(self) -> list[str]:
        """Copy of the watched directories, in registration order."""
        with self.lock:
            return list(self.targets)

    def _subscribe(self, path: str) -> bool:
        try:
            self.source.subscribe(path)
            return True
        except OSError as e:
            logger.warning(f"Failed to watch {path}: {e}")
            return False

    def __contains__(self, path: object) -> bool:
        with self.lock:
            return path in self.targets

    def __len__(self) -> int:
        with self.lock:
            return len(self.targets)
