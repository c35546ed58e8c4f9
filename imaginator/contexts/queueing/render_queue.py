"""
Render Queue

In-memory FIFO of pending render jobs with a single consumer.

The consumer peeks at the head job and only removes it after the render
attempt, so a job stays visible to is_pending() for the whole time it is being
rendered. Every access goes through one condition variable.
"""

import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional

from imaginator.contexts.queueing.exceptions import WorkerStoppedError


@dataclass(frozen=True)
class RenderJob:
    """
    A pending render.

    Attributes:
        name: Output file name (content hash + format), unique in the queue
        kind: Renderer type tag
        payload: Processed input handed to the renderer
    """

    name: str
    kind: str
    payload: str


class RenderQueue:
    """
    Deduplicating FIFO with blocking wait and idle timeout.

    Args:
        idle_timeout: Seconds wait_for_job() waits for a job before the queue
                      closes itself (None waits forever)
    """

    def __init__(self, idle_timeout: Optional[float] = 5.0):
        self.idle_timeout = idle_timeout
        self._jobs: Deque[RenderJob] = deque()
        self._cond = threading.Condition()
        self._closed = False

    def push(self, job: RenderJob) -> bool:
        """
        Append a job unless one with the same name is already queued.

        Returns:
            True if the job was added, False if it was already pending

        Raises:
            WorkerStoppedError: If the queue is closed
        """
        with self._cond:
            if self._closed:
                raise WorkerStoppedError(f"Render queue is closed, cannot queue {job.name}")
            if any(queued.name == job.name for queued in self._jobs):
                return False
            self._jobs.append(job)
            self._cond.notify()
            return True

    def is_pending(self, name: str) -> bool:
        with self._cond:
            return any(job.name == name for job in self._jobs)

    def wait_for_job(self) -> Optional[RenderJob]:
        """
        Block until a job is available and return it without removing it.

        Returns None, and closes the queue, if idle_timeout passes without a
        job or if the queue was closed and has been drained.
        """
        with self._cond:
            self._cond.wait_for(lambda: self._jobs or self._closed, timeout=self.idle_timeout)
            if self._jobs:
                return self._jobs[0]
            self._closed = True
            return None

    def remove(self, job: RenderJob) -> bool:
        """
        Remove a job after its render attempt.

        Returns:
            True if the job was removed, False if it was not queued
        """
        with self._cond:
            for queued in self._jobs:
                if queued.name == job.name:
                    self._jobs.remove(queued)
                    return True
            return False

    def close(self) -> None:
        """Refuse new jobs and wake the consumer. Queued jobs are still drained."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def pending_names(self) -> List[str]:
        with self._cond:
            return [job.name for job in self._jobs]

    def __len__(self) -> int:
        with self._cond:
            return len(self._jobs)
