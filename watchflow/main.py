#!/usr/bin/env python3
"""
watchflow - run task chains when watched files change.

Example:
    watchflow -r src -p '\\.py$' -t 'python -m pytest -q {dir}' -v
"""

from __future__ import annotations

import argparse
import shlex
import signal
import sys
from typing import Optional

from loguru import logger

from watchflow.models.errors import ResolutionError, SetupError
from watchflow.models.schemas import Op
from watchflow.pipeline.pipeline import Pipeline
from watchflow.tasks.command import CommandTask
from watchflow.tasks.workflow import PatternWorkflow
from watchflow.utils.config import get_settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str) -> None:
    """Send loguru output to stderr at ``level``."""
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level.upper())


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Watch directories and run task chains when matching files change.",
    )
    parser.add_argument(
        "--name",
        default=settings.pipeline_name,
        help="Pipeline name used in messages.",
    )
    parser.add_argument(
        "-w", "--watch",
        action="append",
        default=[],
        help="Directory to watch (not its subdirectories). Can be repeated.",
    )
    parser.add_argument(
        "-r", "--recursive",
        action="append",
        default=[],
        help="Directory tree to watch, including new subdirectories. Can be repeated.",
    )
    parser.add_argument(
        "--include-hidden",
        action="store_true",
        help="Also watch hidden directories inside recursive watches.",
    )
    parser.add_argument(
        "-p", "--pattern",
        action="append",
        default=[],
        help="Regular expression matched against changed paths. Can be repeated.",
    )
    parser.add_argument(
        "--ops",
        type=Op.parse,
        default=Op.ALL,
        help="Comma separated operations that trigger tasks (create,write,remove,rename).",
    )
    parser.add_argument(
        "-t", "--task",
        action="append",
        default=[],
        help="Command to run on a match; {src} and {dir} are substituted. Can be repeated.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=settings.verbose,
        help="Report watched directories and every event.",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.batch_interval,
        help="Event batching window in seconds.",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        help="Log level for diagnostics.",
    )

    return parser.parse_args(argv)


def build_workflow(args: argparse.Namespace) -> PatternWorkflow | None:
    """Build the workflow described by the CLI arguments."""
    if not args.pattern:
        return None

    tasks = []
    for command in args.task:
        words = shlex.split(command)
        if not words:
            logger.warning("Ignoring empty task command")
            continue
        program, *rest = words
        tasks.append(CommandTask(program, *rest, name=command, append_dir=False))

    return PatternWorkflow("cli", args.pattern, tasks, ops=args.ops)


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI."""

    args = parse_args(argv)
    configure_logging(args.log_level)

    pipeline = Pipeline(
        name=args.name,
        verbose=args.verbose,
        batch_interval=args.interval,
    )

    watched = 0
    for path in args.watch:
        try:
            pipeline.watch(path)
            watched += 1
        except ResolutionError as e:
            logger.error(f"Cannot watch {path}: {e}")

    for path in args.recursive:
        try:
            pipeline.watch_recursive(path, ignore_hidden=not args.include_hidden)
            watched += 1
        except ResolutionError as e:
            logger.error(f"Cannot watch {path}: {e}")

    if not watched:
        logger.error("No valid directories to monitor.")
        return 1

    workflow = build_workflow(args)
    if workflow is not None:
        pipeline.add(workflow)

    def _signal_handler(signum, frame):  # noqa: D401
        logger.info(f"Received signal {signum}, shutting down.")
        pipeline.stop()

    try:
        current = pipeline.start()
    except SetupError:
        return 1

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    while not current.wait(1.0):
        pass

    logger.info("Pipeline stopped.")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
