"""
Helper utilities for watchflow.

Path resolution, hidden-file detection and directory walking used by the
watch set.
"""

import os
from pathlib import Path
from typing import Iterable, Iterator

from loguru import logger

from watchflow.models.errors import ResolutionError


def resolve_watch_path(path: str | Path, search_paths: Iterable[Path] = ()) -> Path:
    """
    Resolve a watch path to an absolute, canonical path.

    Absolute paths are resolved as-is. Relative paths are tried against
    the current directory first, then against each search path.

    Args:
        path: Path to resolve
        search_paths: Extra roots for relative paths

    Returns:
        Resolved absolute path

    Raises:
        ResolutionError: If no candidate exists or it cannot be accessed
    """
    raw = Path(path).expanduser()

    candidates = [raw]
    if not raw.is_absolute():
        candidates.extend(Path(root).expanduser() / raw for root in search_paths)

    last_error = "no such file or directory"
    for candidate in candidates:
        try:
            return candidate.resolve(strict=True)
        except FileNotFoundError:
            continue
        except (OSError, RuntimeError) as e:
            # permission denied, symlink loops
            last_error = str(e)

    raise ResolutionError(path, last_error)


def is_hidden(path: str | Path) -> bool:
    """Check if path is hidden (name starts with dot)."""
    name = Path(path).name
    return name.startswith('.') and name not in ('.', '..')


def is_within(path: str | Path, root: str | Path) -> bool:
    """
    Check whether ``path`` lies inside ``root`` (or is ``root``).

    Anything that cannot be proven contained is treated as not contained.
    """
    try:
        Path(path).relative_to(root)
    except ValueError:
        return False
    return True


def walk_directories(root: Path, ignore_hidden: bool = False) -> Iterator[Path]:
    """
    Yield ``root`` and every directory below it.

    Hidden directories (and their whole subtree) are skipped when
    ``ignore_hidden`` is set. Unreadable directories are skipped.

    Args:
        root: Directory to walk
        ignore_hidden: Skip hidden directories

    Yields:
        Directory paths, parents before children
    """
    if ignore_hidden and is_hidden(root):
        return

    def _on_error(e: OSError):
        logger.debug(f"Skipping unreadable directory: {e}")

    for current, dirnames, _ in os.walk(root, onerror=_on_error):
        if ignore_hidden:
            dirnames[:] = [d for d in dirnames if not is_hidden(d)]
        yield Path(current)
