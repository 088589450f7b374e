import io
import sys

import pytest

from watchflow.models.errors import TaskError
from watchflow.models.schemas import Op, TaskContext
from watchflow.tasks.command import CommandTask, LintTask, new_lint_task, new_test_task, source_dir
from watchflow.tasks.workflow import PatternWorkflow
from watchflow.utils.sinks import SyncWriter


def make_context(src) -> tuple[TaskContext, io.StringIO, io.StringIO]:
    out, err = io.StringIO(), io.StringIO()
    return TaskContext(src=str(src), out=SyncWriter(out), err=SyncWriter(err)), out, err


def python_task(code: str, cls=CommandTask) -> CommandTask:
    return cls(sys.executable, "-c", code, name="Probe", append_dir=False)


def test_command_task_reports_output_and_ok(tmp_path):
    src = tmp_path / "main.py"
    src.write_text("")
    ctx, out, _ = make_context(src)

    python_task("import os; print(os.getcwd())").run(ctx)

    assert ctx.target == str(src)
    assert out.getvalue().splitlines() == [
        f"Probe ... {tmp_path}",
        str(tmp_path),
        "ok",
    ]
    assert ctx.buf.getvalue() == b""


def test_command_task_failure_flushes_partial_output(tmp_path):
    ctx, out, err = make_context(tmp_path / "main.py")
    task = python_task("import sys; print('half'); print('boom', file=sys.stderr); sys.exit(3)")

    with pytest.raises(TaskError) as excinfo:
        task.run(ctx)

    assert excinfo.value.returncode == 3
    assert "half" in out.getvalue()
    assert "ok" not in out.getvalue().splitlines()
    assert "boom" in err.getvalue()


def test_command_task_missing_program_raises_task_error(tmp_path):
    ctx, _, _ = make_context(tmp_path / "main.py")
    task = CommandTask("definitely-not-a-real-program-xyz")

    with pytest.raises(TaskError):
        task.run(ctx)


def test_build_argv_substitutes_placeholders_or_appends_dir(tmp_path):
    src = str(tmp_path / "pkg" / "mod.py")
    directory = tmp_path / "pkg"

    templated = CommandTask("tool", "--file", "{src}", "--cwd={dir}")
    plain = CommandTask("tool", "-q")
    bare = CommandTask("tool", "-q", append_dir=False)

    assert templated.build_argv(src, directory) == ["tool", "--file", src, f"--cwd={directory}"]
    assert plain.build_argv(src, directory) == ["tool", "-q", str(directory)]
    assert bare.build_argv(src, directory) == ["tool", "-q"]


def test_source_dir_uses_directory_itself(tmp_path):
    assert source_dir(str(tmp_path)) == tmp_path
    assert source_dir(str(tmp_path / "file.py")) == tmp_path


def test_lint_task_fails_on_any_output(tmp_path):
    ctx, out, _ = make_context(tmp_path / "main.py")

    with pytest.raises(TaskError, match="FAIL"):
        python_task("print('unused import')", cls=LintTask).run(ctx)
    assert "unused import" in out.getvalue()

    ctx, out, _ = make_context(tmp_path / "main.py")
    python_task("pass", cls=LintTask).run(ctx)
    assert out.getvalue().splitlines()[-1] == "ok"


def test_factories_build_expected_commands():
    assert new_test_task("-q").build_argv("/p/x.py", "/p")[1:4] == ["-m", "pytest", "-q"]
    lint = new_lint_task()
    assert isinstance(lint, LintTask)
    assert lint.build_argv("/p/x.py", "/p") == ["ruff", "check", "--quiet", "/p"]


class StepTask:
    def __init__(self, name, produces=None, fail=False):
        self.name = name
        self.produces = produces
        self.fail = fail
        self.seen = []

    def run(self, ctx):
        self.seen.append(ctx.src)
        ctx.target = self.produces or ctx.src
        if self.fail:
            raise TaskError(f"{self.name} failed")


def test_workflow_matches_patterns_and_operations():
    workflow = PatternWorkflow("py", [r"\.py$", r"/setup\.cfg$"], ops=Op.CREATE | Op.WRITE)

    assert workflow.match("/w/a.py", Op.WRITE)
    assert workflow.match("/w/setup.cfg", Op.CREATE)
    assert not workflow.match("/w/a.py", Op.REMOVE)
    assert not workflow.match("/w/a.pyc", Op.WRITE)


def test_workflow_chains_targets_between_tasks():
    compile_step = StepTask("compile", produces="/w/build/a.out")
    run_step = StepTask("run")
    workflow = PatternWorkflow("build", [r"\.c$"], [compile_step])
    workflow.add(run_step)
    ctx, _, _ = make_context("/w/a.c")

    workflow.run(ctx)

    assert compile_step.seen == ["/w/a.c"]
    assert run_step.seen == ["/w/build/a.out"]


def test_workflow_stops_at_first_failure_and_reports_it():
    first = StepTask("vet", fail=True)
    second = StepTask("test")
    workflow = PatternWorkflow("go", [r"\.go$"], [first, second])
    ctx, _, err = make_context("/w/main.go")

    with pytest.raises(TaskError):
        workflow.run(ctx)

    assert second.seen == []
    assert err.getvalue() == "go: vet failed\n"
