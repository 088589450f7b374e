"""
External command tasks.

Each task follows the same convention: point ``target`` at the source,
reset the scratch buffer, announce itself on the output sink, run the
command in the directory of the changed path, flush whatever it printed
and finish with ``ok`` or a ``TaskError``.
"""

import subprocess
import sys
from pathlib import Path

from loguru import logger

from watchflow.models.errors import TaskError
from watchflow.models.schemas import TaskContext

PLACEHOLDERS = ("{src}", "{dir}")


def source_dir(src: str) -> Path:
    """Directory a task should run in for a changed path."""
    path = Path(src)
    return path if path.is_dir() else path.parent


class CommandTask:
    """Runs an external program against the directory of the changed path."""

    def __init__(self, program: str, *args: str,
                 name: str | None = None,
                 append_dir: bool = True,
                 timeout: float | None = None):
        """
        Initialize command task.

        ``{src}`` and ``{dir}`` in arguments are replaced with the changed
        path and its directory. Without placeholders the directory is
        appended as the last argument unless ``append_dir`` is False.

        Args:
            program: Executable to run
            args: Extra arguments
            name: Label shown on the output sink
            append_dir: Append the directory when no placeholder is used
            timeout: Seconds before the command is killed
        """
        self.program = program
        self.args = list(args)
        self.name = name or Path(program).name
        self.append_dir = append_dir
        self.timeout = timeout

    def build_argv(self, src: str, directory: Path) -> list[str]:
        argv = [self.program]
        templated = False
        for arg in self.args:
            if any(p in arg for p in PLACEHOLDERS):
                templated = True
                arg = arg.replace("{src}", src).replace("{dir}", str(directory))
            argv.append(arg)

        if self.append_dir and not templated:
            argv.append(str(directory))
        return argv

    def run(self, ctx: TaskContext) -> None:
        ctx.target = ctx.src
        ctx.reset_buffer()
        directory = source_dir(ctx.src)
        ctx.out.writeln(self.name, "...", directory)

        argv = self.build_argv(ctx.src, directory)
        logger.debug(f"Running {argv} in {directory}")

        try:
            try:
                result = subprocess.run(
                    argv,
                    cwd=directory,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    timeout=self.timeout,
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                raise TaskError(f"{self.name}: {e}") from e

            ctx.buf.write(result.stdout)
            if result.stderr:
                ctx.err.write(result.stderr.decode("utf-8", errors="replace"))
            self.check(ctx, result)
        finally:
            ctx.flush_buffer()

        ctx.out.writeln("ok")

    def check(self, ctx: TaskContext, result: subprocess.CompletedProcess) -> None:
        """Raise ``TaskError`` if the command failed."""
        if result.returncode != 0:
            raise TaskError(
                f"{self.name} exited with status {result.returncode}",
                returncode=result.returncode,
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class LintTask(CommandTask):
    """Command task that also fails when the command prints anything."""

    def check(self, ctx: TaskContext, result: subprocess.CompletedProcess) -> None:
        super().check(ctx, result)
        if ctx.buf.getbuffer().nbytes > 0:
            raise TaskError("FAIL")


def new_test_task(*args: str) -> CommandTask:
    """Task that runs the project tests with pytest."""
    return CommandTask(sys.executable, "-m", "pytest", *args, name="Python Test")


def new_compile_task(*args: str) -> CommandTask:
    """Task that byte-compiles the project."""
    return CommandTask(sys.executable, "-m", "compileall", "-q", *args, name="Python Compile")


def new_lint_task(*args: str) -> LintTask:
    """Task that lints the project with ruff."""
    return LintTask("ruff", "check", "--quiet", *args, name="Ruff Lint")
