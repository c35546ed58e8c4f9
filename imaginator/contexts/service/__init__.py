"""
Service Context

Responsibilities:
- Exports a worker on a well-known endpoint (Unix socket or TCP, XML-RPC)
- Resolves a shared worker handle, spawning a worker on first use
- Releases the endpoint when a worker goes idle so the next request respawns
- Offers the client facade used by applications and the CLI

Owns: Endpoint binding, handle lifecycle, cross-process calls
Never: Renders anything itself (see rendering and queueing contexts)
"""

from imaginator.contexts.service.client import RenderService
from imaginator.contexts.service.exceptions import RemoteWorkerError, WorkerUnreachableError
from imaginator.contexts.service.handles import LocalHandle, RemoteHandle, WorkerHandle
from imaginator.contexts.service.locator import HandleState, ServiceLocator, get_locator, resolve
from imaginator.contexts.service.transport import DEFAULT_ENDPOINT, Endpoint

__all__ = [
    "RenderService",
    "ServiceLocator",
    "HandleState",
    "get_locator",
    "resolve",
    "WorkerHandle",
    "LocalHandle",
    "RemoteHandle",
    "Endpoint",
    "DEFAULT_ENDPOINT",
    "WorkerUnreachableError",
    "RemoteWorkerError",
]
