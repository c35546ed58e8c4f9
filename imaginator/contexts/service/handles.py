"""
Worker Handles

A handle is how clients talk to a worker without caring where it lives:
LocalHandle calls a worker hosted by this process, RemoteHandle calls one
hosted by another process (or another locator) through its endpoint.

WorkerService is the object exported on the endpoint. Known errors cross the
process boundary as XML-RPC faults with stable codes and are raised again on
the client side as the same exception types.
"""

import http.client
import json
import os
import threading
import xmlrpc.client
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type, Union

from dotenv import load_dotenv

from imaginator.contexts.queueing.exceptions import RenderTimeoutError, WorkerStoppedError
from imaginator.contexts.queueing.worker import POLL_ATTEMPTS, POLL_INTERVAL, Worker
from imaginator.contexts.rendering.exceptions import UnknownRendererError, ValidationError
from imaginator.contexts.service.exceptions import RemoteWorkerError, WorkerUnreachableError
from imaginator.contexts.service.transport import Endpoint, connect

load_dotenv()
RPC_TIMEOUT = float(os.getenv("IMAGINATOR_RPC_TIMEOUT", str(POLL_INTERVAL * POLL_ATTEMPTS + 10)))
PROBE_TIMEOUT = float(os.getenv("IMAGINATOR_PROBE_TIMEOUT", "2"))

FAULT_CODES: Dict[Type[Exception], int] = {
    ValidationError: 4001,
    UnknownRendererError: 4004,
    RenderTimeoutError: 4008,
    WorkerStoppedError: 4010,
}

# Exception attributes carried in the fault payload
FAULT_FIELDS = ("tokens", "kind", "available", "name", "waited_s")


def fault_from_error(error: Exception) -> xmlrpc.client.Fault:
    """Encode a known exception as an XML-RPC fault with a JSON payload."""
    code = next(code for cls, code in FAULT_CODES.items() if isinstance(error, cls))
    payload = {"message": str(error)}
    payload.update({field: getattr(error, field) for field in FAULT_FIELDS if hasattr(error, field)})
    return xmlrpc.client.Fault(code, json.dumps(payload))


def error_from_fault(fault: xmlrpc.client.Fault) -> Exception:
    """Rebuild the exception a remote worker raised."""
    try:
        payload = json.loads(fault.faultString)
    except (TypeError, ValueError):
        payload = None
    if not isinstance(payload, dict):
        return RemoteWorkerError(f"Remote worker error: {fault.faultString}")

    message = payload.get("message", "")
    if fault.faultCode == FAULT_CODES[ValidationError]:
        return ValidationError(message, tokens=payload.get("tokens"))
    if fault.faultCode == FAULT_CODES[UnknownRendererError]:
        return UnknownRendererError(payload.get("kind", ""), available=payload.get("available"))
    if fault.faultCode == FAULT_CODES[RenderTimeoutError]:
        return RenderTimeoutError(payload.get("name", ""), waited_s=payload.get("waited_s"))
    if fault.faultCode == FAULT_CODES[WorkerStoppedError]:
        return WorkerStoppedError(message)
    return RemoteWorkerError(f"Remote worker error: {message}")


class WorkerService:
    """
    Object exported over XML-RPC on behalf of a worker.

    Only the methods listed in EXPORTED can be called remotely.
    """

    EXPORTED = ("ping", "enqueue", "result", "is_pending", "status")

    def __init__(self, worker: Worker):
        self.worker = worker

    def _dispatch(self, method: str, params: tuple) -> Any:
        if method not in self.EXPORTED:
            raise Exception(f'method "{method}" is not supported')
        try:
            return getattr(self, method)(*params)
        except tuple(FAULT_CODES) as e:
            raise fault_from_error(e) from None

    def ping(self) -> str:
        if self.worker.queue.closed:
            raise WorkerStoppedError(f"Worker {self.worker.worker_id} is shutting down")
        return self.worker.worker_id

    def enqueue(self, kind: str, code: str) -> str:
        return self.worker.enqueue(kind, code)

    def result(self, name: str) -> str:
        return self.worker.result(name)

    def is_pending(self, name: str) -> bool:
        return self.worker.is_pending(name)

    def status(self) -> dict:
        return self.worker.status()


class WorkerHandle(ABC):
    """Location-transparent reference to a running worker."""

    is_local: bool = False

    @abstractmethod
    def enqueue(self, kind: str, code: str) -> str:
        """Queue a render; returns the output name."""

    @abstractmethod
    def result(self, name: str) -> str:
        """Path of the rendered image; raises RenderTimeoutError if it never appears."""

    @abstractmethod
    def is_pending(self, name: str) -> bool:
        ...

    @abstractmethod
    def status(self) -> dict:
        ...

    @abstractmethod
    def ping(self) -> bool:
        """Liveness probe."""


class LocalHandle(WorkerHandle):
    """Handle to a worker hosted by this process and exported through server."""

    is_local = True

    def __init__(self, worker: Worker, server):
        self.worker = worker
        self.server = server
        self.threads: List[threading.Thread] = []
        # Set once the server is shut down and the endpoint freed
        self.released = threading.Event()

    def enqueue(self, kind: str, code: str) -> str:
        return self.worker.enqueue(kind, code)

    def result(self, name: str) -> str:
        return self.worker.result(name)

    def is_pending(self, name: str) -> bool:
        return self.worker.is_pending(name)

    def status(self) -> dict:
        return self.worker.status()

    def ping(self) -> bool:
        return not self.worker.queue.closed

    def __repr__(self) -> str:
        return f"LocalHandle(worker_id={self.worker.worker_id!r}, endpoint='{self.server.endpoint}')"


class RemoteHandle(WorkerHandle):
    """
    Handle to a worker reached through its endpoint.

    Args:
        endpoint: Endpoint address of the worker
        timeout: Socket timeout for calls (must exceed the result() poll window)
        probe_timeout: Socket timeout for ping()
    """

    def __init__(
        self,
        endpoint: Union[str, Endpoint],
        timeout: float = RPC_TIMEOUT,
        probe_timeout: float = PROBE_TIMEOUT,
    ):
        self.endpoint = Endpoint.parse(endpoint)
        self.timeout = timeout
        self.probe_timeout = probe_timeout

    def _call(self, method: str, *args, timeout: Optional[float] = None) -> Any:
        proxy = connect(self.endpoint, timeout=timeout or self.timeout)
        try:
            with proxy:
                return getattr(proxy, method)(*args)
        except xmlrpc.client.Fault as fault:
            raise error_from_fault(fault) from None
        except (OSError, http.client.HTTPException, xmlrpc.client.ProtocolError) as e:
            raise WorkerUnreachableError(f"Worker at {self.endpoint} unreachable: {e}") from e

    def enqueue(self, kind: str, code: str) -> str:
        return self._call("enqueue", kind, code)

    def result(self, name: str) -> str:
        return self._call("result", name)

    def is_pending(self, name: str) -> bool:
        return self._call("is_pending", name)

    def status(self) -> dict:
        return self._call("status")

    def ping(self) -> bool:
        try:
            self._call("ping", timeout=self.probe_timeout)
        except (WorkerUnreachableError, WorkerStoppedError, RemoteWorkerError):
            return False
        return True

    def __repr__(self) -> str:
        return f"RemoteHandle(endpoint='{self.endpoint}')"
