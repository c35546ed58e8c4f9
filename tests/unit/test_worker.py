"""Unit tests for the render worker, driven one loop iteration at a time."""

import threading
import time

import pytest

from imaginator.contexts.queueing.exceptions import RenderTimeoutError, WorkerStoppedError
from imaginator.contexts.queueing.worker import Worker
from imaginator.contexts.rendering.exceptions import UnknownRendererError, ValidationError
from imaginator.utils.event_logging import get_recent_events


@pytest.fixture
def worker(tmp_path, registry):
    return Worker(
        output_dir=tmp_path / "images",
        renderers=registry,
        idle_timeout=0.1,
        poll_interval=0.01,
        poll_attempts=5,
        events_file=None,
    )


@pytest.mark.unit
def test_creates_output_dir(worker):
    assert worker.output_dir.is_dir()


@pytest.mark.unit
def test_worker_holds_frozen_registry(worker, registry):
    assert worker.renderers.frozen
    assert not registry.frozen


@pytest.mark.unit
def test_enqueue_is_idempotent(worker):
    first = worker.enqueue("echo", "a+b")
    second = worker.enqueue("echo", " a+b ")

    assert first == second
    assert len(worker.queue) == 1
    assert worker.is_pending(first)


@pytest.mark.unit
def test_process_next_renders_and_removes_job(worker, echo_renderer):
    name = worker.enqueue("echo", "a+b")

    assert worker.process_next()

    assert not worker.is_pending(name)
    assert (worker.output_dir / name).read_text() == "a+b"
    assert worker.result(name) == str(worker.output_dir / name)
    assert echo_renderer.rendered == ["a+b"]


@pytest.mark.unit
def test_cached_output_is_not_queued_again(worker, echo_renderer):
    name = worker.enqueue("echo", "a+b")
    worker.process_next()

    assert worker.enqueue("echo", "a+b") == name
    assert len(worker.queue) == 0
    assert echo_renderer.rendered == ["a+b"]


@pytest.mark.unit
def test_failed_render_removes_job_and_times_out(worker):
    name = worker.enqueue("broken", "a+b")

    assert worker.process_next()

    assert not worker.is_pending(name)
    assert not (worker.output_dir / name).exists()
    with pytest.raises(RenderTimeoutError) as exc_info:
        worker.result(name)
    assert exc_info.value.name == name
    assert "Image could not be generated" in str(exc_info.value)


@pytest.mark.unit
def test_failure_does_not_stop_the_loop(worker):
    worker.enqueue("broken", "x")
    good = worker.enqueue("echo", "y")

    assert worker.process_next()
    assert worker.process_next()

    assert (worker.output_dir / good).exists()


@pytest.mark.unit
def test_result_of_unknown_name_returns_without_polling(worker):
    start = time.monotonic()

    with pytest.raises(RenderTimeoutError):
        worker.result("0123456789abcdef0123456789abcdef.txt")

    assert time.monotonic() - start < 0.05


@pytest.mark.unit
def test_result_waits_for_pending_job(tmp_path, registry):
    worker = Worker(tmp_path, registry, idle_timeout=1, poll_interval=0.02, poll_attempts=100, events_file=None)
    name = worker.enqueue("echo", "late")
    timer = threading.Timer(0.1, worker.process_next)
    timer.start()

    try:
        path = worker.result(name)
    finally:
        timer.join()

    assert path == str(tmp_path / name)


@pytest.mark.unit
def test_result_rejects_path_names(worker):
    with pytest.raises(ValidationError):
        worker.result("../outside.txt")


@pytest.mark.unit
def test_invalid_input_creates_no_job(worker):
    with pytest.raises(ValidationError):
        worker.enqueue("echo", "forbidden")
    with pytest.raises(UnknownRendererError):
        worker.enqueue("nope", "x")

    assert len(worker.queue) == 0


@pytest.mark.unit
def test_run_returns_after_idle_timeout(worker):
    name = worker.enqueue("echo", "a")

    worker.run()

    assert worker.stopped.is_set()
    assert (worker.output_dir / name).exists()
    with pytest.raises(WorkerStoppedError):
        worker.enqueue("echo", "b")


@pytest.mark.unit
def test_stop_drains_queue(tmp_path, registry):
    worker = Worker(tmp_path, registry, idle_timeout=None, events_file=None)
    names = [worker.enqueue("echo", code) for code in ("a", "b")]
    worker.stop()

    worker.run()

    assert all((tmp_path / name).exists() for name in names)


@pytest.mark.unit
def test_status(worker):
    name = worker.enqueue("echo", "a")

    status = worker.status()

    assert status["worker_id"] == worker.worker_id
    assert status["pending"] == 1
    assert status["jobs"] == [name]
    assert status["renderers"] == ["broken", "echo"]
    assert status["closed"] is False


@pytest.mark.unit
def test_job_events_are_logged(tmp_path, registry):
    events_file = tmp_path / "events.jsonl"
    worker = Worker(tmp_path / "images", registry, idle_timeout=0.05, events_file=events_file)
    ok = worker.enqueue("echo", "a")
    failed = worker.enqueue("broken", "b")

    worker.run()

    types = [e["event_type"] for e in get_recent_events(events_file, 50)]
    assert types[0] == "enqueued"
    assert "worker_started" in types
    assert types[-1] == "worker_stopped"
    assert get_recent_events(events_file, job_name=ok, event_type="render_completed")
    failure = get_recent_events(events_file, job_name=failed, event_type="render_failed")[0]
    assert failure["stage"] == "layout"
    assert failure["kind"] == "broken"
