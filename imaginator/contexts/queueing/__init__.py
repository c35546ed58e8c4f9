"""
Queueing Context

Responsibilities:
- Names outputs by content hash so the output directory acts as the cache
- Keeps pending render jobs in a deduplicating FIFO
- Runs the single consumer that renders jobs one at a time
- Answers result() by polling for the output file

Owns: Render queue, worker loop, output naming
Never: Talks to other processes (see service context)
"""

from imaginator.contexts.queueing.cache import ContentCache, content_hash
from imaginator.contexts.queueing.exceptions import RenderTimeoutError, WorkerStoppedError
from imaginator.contexts.queueing.render_queue import RenderJob, RenderQueue
from imaginator.contexts.queueing.worker import Worker

__all__ = [
    "ContentCache",
    "content_hash",
    "RenderJob",
    "RenderQueue",
    "Worker",
    "RenderTimeoutError",
    "WorkerStoppedError",
]
