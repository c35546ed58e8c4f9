"""
Render Worker

Owns the render queue and the renderer registry, and runs the single
consumer loop that drains the queue one job at a time.

Render failures never leave the worker: they are logged, the job is removed,
and the missing output file is the only visible effect. A caller waiting in
result() then gets a RenderTimeoutError.
"""

import os
import threading
import time
import uuid
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from imaginator.contexts.queueing.cache import ContentCache
from imaginator.contexts.queueing.exceptions import RenderTimeoutError
from imaginator.contexts.queueing.logger import (
    _log_debug,
    _log_info,
    log_render_result,
    log_render_start,
)
from imaginator.contexts.queueing.render_queue import RenderJob, RenderQueue
from imaginator.contexts.rendering.registry import RendererRegistry
from imaginator.utils.event_logging import EVENTS_FILE, log_job_event

load_dotenv()
IDLE_TIMEOUT = float(os.getenv("IMAGINATOR_IDLE_TIMEOUT", "5"))
POLL_INTERVAL = float(os.getenv("IMAGINATOR_POLL_INTERVAL", "0.5"))
POLL_ATTEMPTS = int(os.getenv("IMAGINATOR_POLL_ATTEMPTS", "20"))


class Worker:
    """
    Single-consumer render worker.

    Args:
        output_dir: Directory for rendered images (created if missing)
        renderers: Renderer registry; the worker keeps a frozen copy
        idle_timeout: Seconds without jobs before run() returns (None: never)
        poll_interval: Seconds between checks in result()
        poll_attempts: Maximum number of checks in result()
        events_file: JSON Lines job event log (None disables it)
    """

    def __init__(
        self,
        output_dir: Union[str, Path],
        renderers: RendererRegistry,
        idle_timeout: Optional[float] = IDLE_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        poll_attempts: int = POLL_ATTEMPTS,
        events_file: Optional[Union[str, Path]] = EVENTS_FILE,
    ):
        self.worker_id = uuid.uuid4().hex[:12]
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True, mode=0o755)

        self.renderers = renderers.freeze()
        self.cache = ContentCache(self.output_dir, self.renderers)
        self.queue = RenderQueue(idle_timeout=idle_timeout)
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.events_file = events_file
        self.stopped = threading.Event()

    def enqueue(self, kind: str, code: str) -> str:
        """
        Queue a render unless its output already exists or is already queued.

        Returns:
            Output file name

        Raises:
            UnknownRendererError: If kind is not registered
            ValidationError: If the renderer rejects the input
            WorkerStoppedError: If the worker is shutting down
        """
        name, processed = self.cache.prepare(kind, code)
        if not self.cache.is_cached(name):
            if self.queue.push(RenderJob(name=name, kind=kind, payload=processed)):
                _log_debug(f"Queued {name} ({kind})")
                log_job_event(self.events_file, "enqueued", name, "worker", kind=kind)
        return name

    def result(self, name: str) -> str:
        """
        Path of a rendered image, waiting while its job is still queued.

        Polls every poll_interval seconds, at most poll_attempts times, and
        stops early once the job is no longer pending.

        Raises:
            RenderTimeoutError: If the image does not exist after polling
        """
        path = self.cache.path(name)
        if not path.exists():
            for _ in range(self.poll_attempts):
                if not self.queue.is_pending(name):
                    break
                time.sleep(self.poll_interval)

        if not path.exists():
            raise RenderTimeoutError(name, waited_s=self.poll_interval * self.poll_attempts)
        return str(path)

    def is_pending(self, name: str) -> bool:
        return self.queue.is_pending(name)

    def status(self) -> dict:
        """Snapshot of the worker state (safe to send over RPC)."""
        names = self.queue.pending_names()
        return {
            "worker_id": self.worker_id,
            "pid": os.getpid(),
            "pending": len(names),
            "jobs": names,
            "renderers": self.renderers.kinds(),
            "output_dir": str(self.output_dir),
            "closed": self.queue.closed,
        }

    def process_next(self) -> bool:
        """
        Run one iteration of the consumer loop.

        Returns:
            False if the queue went idle (or was stopped and drained), True otherwise
        """
        job = self.queue.wait_for_job()
        if job is None:
            return False

        try:
            self._render(job)
        finally:
            self.queue.remove(job)
        return True

    def _render(self, job: RenderJob) -> None:
        path = self.cache.path(job.name)
        if path.exists():
            _log_debug(f"{job.name} already rendered, skipping")
            log_job_event(self.events_file, "render_skipped", job.name, "worker")
            return

        log_render_start(job, pending=len(self.queue))
        log_job_event(self.events_file, "render_started", job.name, "worker", kind=job.kind)
        start_time = time.time()

        try:
            self.renderers.get(job.kind).render(job.payload, path)
        except Exception as e:
            elapsed = time.time() - start_time
            log_render_result(job, error=e, elapsed_time=elapsed)
            log_job_event(
                self.events_file,
                "render_failed",
                job.name,
                "worker",
                kind=job.kind,
                error=str(e),
                stage=getattr(e, "stage", None),
                elapsed_s=round(elapsed, 3),
            )
            return

        elapsed = time.time() - start_time
        log_render_result(job, elapsed_time=elapsed)
        log_job_event(
            self.events_file,
            "render_completed",
            job.name,
            "worker",
            kind=job.kind,
            elapsed_s=round(elapsed, 3),
        )

    def run(self) -> None:
        """Drain the queue until it goes idle, then mark the worker stopped."""
        _log_info(f"Worker {self.worker_id} started ({', '.join(self.renderers.kinds())})")
        log_job_event(self.events_file, "worker_started", None, "worker", worker_id=self.worker_id)
        try:
            while self.process_next():
                pass
        finally:
            self.queue.close()
            self.stopped.set()
            _log_info(f"Worker {self.worker_id} stopped")
            log_job_event(
                self.events_file, "worker_stopped", None, "worker", worker_id=self.worker_id
            )

    def stop(self) -> None:
        """Stop accepting jobs; run() returns once the queue is drained."""
        self.queue.close()
