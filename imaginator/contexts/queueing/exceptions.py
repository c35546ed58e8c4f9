"""Exceptions raised by the render queue and worker."""

from typing import Optional

from imaginator.contexts.rendering.exceptions import ImaginatorError


class RenderTimeoutError(ImaginatorError):
    """
    Exception raised when an image did not appear within the poll window.

    Attributes:
        name: Output file name that was waited for
        waited_s: Upper bound of the time spent polling
    """

    def __init__(self, name: str, waited_s: Optional[float] = None):
        self.name = name
        self.waited_s = waited_s
        message = f"Image could not be generated: {name}"
        if waited_s is not None:
            message += f" (waited up to {waited_s:.1f}s)"
        super().__init__(message)


class WorkerStoppedError(ImaginatorError):
    """Exception raised when a job is pushed to a worker that is shutting down."""
