"""
Client facade.

RenderService is what applications use: enqueue markup, wait for the image.
Every call goes through the locator, so the first call spawns a worker when
none is running, and a call that hits a worker which has just gone idle (or
died) is retried once against a freshly resolved one.

Usage:
    from imaginator.contexts.service import RenderService

    service = RenderService(output_dir="outs/images")
    name = service.enqueue("latex", r"\\frac{a}{b}")
    path = service.result(name)
"""

from pathlib import Path
from typing import Any, Mapping, Optional, Union

from imaginator.contexts.queueing.exceptions import WorkerStoppedError
from imaginator.contexts.rendering.base import Renderer
from imaginator.contexts.rendering.registry import RendererRegistry
from imaginator.contexts.service.exceptions import WorkerUnreachableError
from imaginator.contexts.service.locator import OUTPUT_PATH, ServiceLocator, get_locator
from imaginator.contexts.service.logger import _log_debug
from imaginator.contexts.service.transport import DEFAULT_ENDPOINT, Endpoint

# Errors meaning "this handle is dead", as opposed to errors about the request
RETRYABLE_ERRORS = (WorkerStoppedError, WorkerUnreachableError)


class RenderService:
    """
    Enqueue renders and collect results from the worker behind an endpoint.

    Args:
        endpoint: Endpoint address shared by all clients
        output_dir: Output directory used if this process spawns the worker
        renderers: Renderers used if this process spawns the worker
        locator: Explicit locator (default: the process-wide one for endpoint)
        **options: Further ServiceLocator options (idle_timeout, poll_interval, ...)
    """

    def __init__(
        self,
        endpoint: Union[str, Endpoint] = DEFAULT_ENDPOINT,
        output_dir: Union[str, Path] = OUTPUT_PATH,
        renderers: Optional[Union[RendererRegistry, Mapping[str, Renderer]]] = None,
        locator: Optional[ServiceLocator] = None,
        **options,
    ):
        if locator is None:
            locator = get_locator(endpoint, output_dir=output_dir, renderers=renderers, **options)
        self.locator = locator

    def _call(self, method: str, *args) -> Any:
        handle = self.locator.resolve()
        try:
            return getattr(handle, method)(*args)
        except RETRYABLE_ERRORS as e:
            _log_debug(f"{method} failed on {handle!r} ({e}), resolving again")
            self.locator.invalidate(handle)

        handle = self.locator.resolve()
        return getattr(handle, method)(*args)

    def enqueue(self, kind: str, code: str) -> str:
        """
        Queue markup for rendering.

        Returns:
            Output file name (content hash + format)

        Raises:
            UnknownRendererError: If kind is not registered
            ValidationError: If the input is rejected
        """
        return self._call("enqueue", kind, code)

    def result(self, name: str) -> str:
        """
        Path of a rendered image, waiting for a bounded time while it is pending.

        Raises:
            RenderTimeoutError: If the image does not appear
        """
        return self._call("result", name)

    def render(self, kind: str, code: str) -> str:
        """Enqueue and wait; returns the image path."""
        return self.result(self.enqueue(kind, code))

    def is_pending(self, name: str) -> bool:
        return self._call("is_pending", name)

    def status(self) -> dict:
        return self._call("status")
