import io
import threading

import pytest
from loguru import logger

from conftest import wait_for
from watchflow.models.errors import ResolutionError, SetupError
from watchflow.models.schemas import Op, PipelineState, TaskContext
from watchflow.pipeline.pipeline import Pipeline


class CollectingWorkflow:
    def __init__(self, suffix: str = ""):
        self.suffix = suffix
        self.seen: list[str] = []
        self.lock = threading.Lock()

    def match(self, path: str, op: Op) -> bool:
        return path.endswith(self.suffix)

    def run(self, ctx: TaskContext) -> None:
        with self.lock:
            self.seen.append(ctx.src)


@pytest.fixture
def pipeline_parts(settings, fake_source):
    out = io.StringIO()
    pipeline = Pipeline(
        name="unit",
        verbose=True,
        out=out,
        err=io.StringIO(),
        source_factory=lambda: fake_source,
        settings=settings,
    )
    yield pipeline, fake_source, out
    if pipeline.state is PipelineState.RUNNING:
        pipeline.stop()


def test_defaults_come_from_settings(settings):
    pipeline = Pipeline(settings=settings)

    assert pipeline.name == "test"
    assert pipeline.batch_interval == 0.05
    assert pipeline.verbose is False
    assert pipeline.state is PipelineState.CONFIGURED


def test_watch_is_idempotent_and_reports_errors(pipeline_parts, tmp_path):
    pipeline, _, _ = pipeline_parts

    pipeline.watch(tmp_path)
    pipeline.watch(str(tmp_path) + "/.")

    assert pipeline.watches == [str(tmp_path.resolve())]
    with pytest.raises(ResolutionError):
        pipeline.watch(tmp_path / "missing")


def test_start_subscribes_watches_and_dispatches_events(pipeline_parts, tmp_path):
    pipeline, source, out = pipeline_parts
    workflow = CollectingWorkflow(".py")
    pipeline.add(workflow)
    root = pipeline.watch(tmp_path)

    current = pipeline.start()

    assert pipeline.state is PipelineState.RUNNING
    assert source.subscribed == [root]
    assert f"Watching {root}" in out.getvalue()

    source.emit(f"{root}/a.py", Op.WRITE)
    source.emit(f"{root}/notes.txt", Op.WRITE)
    source.emit(f"{root}/b.py", Op.CREATE)

    assert wait_for(lambda: len(workflow.seen) == 2)
    assert workflow.seen == [f"{root}/a.py", f"{root}/b.py"]
    assert current.running


def test_watch_after_start_subscribes_immediately(pipeline_parts, tmp_path):
    pipeline, source, _ = pipeline_parts
    (tmp_path / "late").mkdir()
    pipeline.start()

    late = pipeline.watch(tmp_path / "late")

    assert source.subscribed == [late]


def test_new_directory_under_recursive_root_is_watched(pipeline_parts, tmp_path):
    pipeline, source, _ = pipeline_parts
    root = pipeline.watch_recursive(tmp_path, ignore_hidden=True)
    pipeline.start()

    new_dir = tmp_path.resolve() / "pkg"
    (new_dir / "sub").mkdir(parents=True)
    source.emit(new_dir, Op.CREATE)

    assert wait_for(lambda: str(new_dir / "sub") in source.subscribed)
    assert str(new_dir) in pipeline.watches
    assert root in pipeline.recursive_roots


def test_stop_ends_the_run(pipeline_parts, tmp_path):
    pipeline, source, _ = pipeline_parts
    workflow = CollectingWorkflow()
    pipeline.add(workflow)
    pipeline.watch(tmp_path)
    current = pipeline.start()

    pipeline.stop()

    assert current.wait(5)
    assert not current.running
    assert not current.batcher_thread.is_alive()
    assert source.closed
    assert pipeline.state is PipelineState.STOPPED

    source.emit(tmp_path / "after.py", Op.WRITE)
    assert not wait_for(lambda: workflow.seen, timeout=0.3)


def test_run_blocks_until_stopped_from_another_thread(pipeline_parts, tmp_path):
    pipeline, source, _ = pipeline_parts
    workflow = CollectingWorkflow()
    pipeline.add(workflow)
    pipeline.watch(tmp_path)

    runner = threading.Thread(target=pipeline.run, daemon=True)
    runner.start()
    assert wait_for(lambda: pipeline.state is PipelineState.RUNNING)

    source.emit(tmp_path / "x.py", Op.WRITE)
    assert wait_for(lambda: len(workflow.seen) == 1)
    assert runner.is_alive()

    pipeline.stop()
    runner.join(timeout=5)
    assert not runner.is_alive()


def test_stopped_pipeline_cannot_restart(pipeline_parts):
    pipeline, _, _ = pipeline_parts
    pipeline.start()

    with pytest.raises(RuntimeError):
        pipeline.start()

    pipeline.stop()
    with pytest.raises(RuntimeError):
        pipeline.start()


def test_stop_before_start_is_harmless(pipeline_parts):
    pipeline, _, _ = pipeline_parts

    pipeline.stop()

    assert pipeline.state is PipelineState.CONFIGURED


def test_setup_failure_keeps_pipeline_configured(settings, tmp_path):
    def broken_source():
        raise OSError("inotify limit reached")

    pipeline = Pipeline(source_factory=broken_source, settings=settings)
    pipeline.watch(tmp_path)

    pipeline.run()
    assert pipeline.state is PipelineState.CONFIGURED

    with pytest.raises(SetupError):
        pipeline.start()
    assert pipeline.current_run is None


def test_empty_pipeline_still_starts(pipeline_parts):
    pipeline, _, _ = pipeline_parts
    messages = []
    sink_id = logger.add(messages.append, level="WARNING")

    try:
        pipeline.start()
    finally:
        logger.remove(sink_id)

    assert pipeline.state is PipelineState.RUNNING
    text = "".join(str(m) for m in messages)
    assert "is not watching anything" in text
    assert "has no workflows" in text
