"""
Service Locator / Lazy Spawner

Resolves the worker handle for an endpoint. If a worker already answers on
the endpoint, the handle is a RemoteHandle to it. Otherwise this process
binds the endpoint, constructs a Worker, exports it, and runs its consumer
loop on a background thread; the handle is then a LocalHandle.

State transitions of a locator:

    UNBOUND -> BINDING -> BOUND_LOCAL | BOUND_REMOTE -> UNBOUND

A local worker returns the locator to UNBOUND when it goes idle and releases
the endpoint; the next resolve() spawns again. The bind-or-connect decision
is made under the locator's lock and under a file lock on the endpoint, so
racing threads and processes converge on one worker.
"""

import os
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from dotenv import load_dotenv

from imaginator.contexts.queueing.worker import IDLE_TIMEOUT, POLL_ATTEMPTS, POLL_INTERVAL, Worker
from imaginator.contexts.rendering.base import Renderer
from imaginator.contexts.rendering.registry import RendererRegistry, configured_renderers
from imaginator.contexts.service.handles import (
    RPC_TIMEOUT,
    LocalHandle,
    RemoteHandle,
    WorkerHandle,
    WorkerService,
)
from imaginator.contexts.service.logger import _log_debug, _log_info, _log_warning
from imaginator.contexts.service.transport import (
    DEFAULT_ENDPOINT,
    Endpoint,
    bind,
    clear_stale,
    endpoint_lock,
    is_address_in_use,
)
from imaginator.utils.event_logging import EVENTS_FILE

load_dotenv()
OUTPUT_PATH = Path(os.getenv("IMAGINATOR_OUTPUT_PATH", "outs/images"))

BIND_ATTEMPTS = 20
BIND_RETRY_DELAY = 0.1


class HandleState(Enum):
    UNBOUND = "unbound"
    BINDING = "binding"
    BOUND_LOCAL = "bound-local"
    BOUND_REMOTE = "bound-remote"


class ServiceLocator:
    """
    Lazily resolves and caches the worker handle for one endpoint.

    Args:
        endpoint: Endpoint address shared by all clients
        output_dir: Output directory for a worker spawned by this locator
        renderers: Renderers for a spawned worker (default: configured renderers)
        idle_timeout: Idle timeout of a spawned worker (None: never idle out)
        poll_interval: result() poll interval of a spawned worker
        poll_attempts: result() poll attempts of a spawned worker
        events_file: Job event log of a spawned worker
        rpc_timeout: Socket timeout for calls through a RemoteHandle
    """

    def __init__(
        self,
        endpoint: Union[str, Endpoint] = DEFAULT_ENDPOINT,
        output_dir: Union[str, Path] = OUTPUT_PATH,
        renderers: Optional[Union[RendererRegistry, Mapping[str, Renderer]]] = None,
        idle_timeout: Optional[float] = IDLE_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        poll_attempts: int = POLL_ATTEMPTS,
        events_file: Optional[Union[str, Path]] = EVENTS_FILE,
        rpc_timeout: float = RPC_TIMEOUT,
    ):
        self.endpoint = Endpoint.parse(endpoint)
        self.output_dir = Path(output_dir)
        if renderers is None:
            renderers = configured_renderers()
        elif not isinstance(renderers, RendererRegistry):
            renderers = RendererRegistry(renderers)
        self.renderers = renderers
        self.idle_timeout = idle_timeout
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.events_file = events_file
        self.rpc_timeout = rpc_timeout

        self._lock = threading.RLock()
        self._handle: Optional[WorkerHandle] = None
        self._state = HandleState.UNBOUND
        self._local: Optional[LocalHandle] = None

    @property
    def state(self) -> HandleState:
        with self._lock:
            return self._state

    @property
    def handle(self) -> Optional[WorkerHandle]:
        with self._lock:
            return self._handle

    def resolve(self) -> WorkerHandle:
        """
        Return the worker handle, spawning a worker if none answers.

        Returns as soon as the endpoint is bound and listening; rendering
        happens on the worker's own thread.
        """
        with self._lock:
            if self._handle is not None:
                return self._handle

            self._state = HandleState.BINDING
            try:
                with endpoint_lock(self.endpoint):
                    handle = self._bind_or_connect()
            except BaseException:
                self._state = HandleState.UNBOUND
                raise

            self._handle = handle
            self._state = HandleState.BOUND_LOCAL if handle.is_local else HandleState.BOUND_REMOTE
            return handle

    def _bind_or_connect(self) -> WorkerHandle:
        remote = RemoteHandle(self.endpoint, timeout=self.rpc_timeout)
        if remote.ping():
            _log_debug(f"Using worker at {self.endpoint}")
            return remote

        for attempt in range(1, BIND_ATTEMPTS + 1):
            if clear_stale(self.endpoint):
                _log_warning(f"Removed stale socket {self.endpoint.path}")
            try:
                server = bind(self.endpoint)
            except OSError as e:
                if not is_address_in_use(e):
                    raise
                # Either a worker bound outside our lock, or one that is
                # shutting down still holds the address
                if remote.ping():
                    _log_debug(f"Endpoint {self.endpoint} taken, using existing worker")
                    return remote
                if attempt == BIND_ATTEMPTS:
                    raise
                time.sleep(BIND_RETRY_DELAY)
            else:
                return self._spawn(server)

    def _spawn(self, server) -> LocalHandle:
        try:
            worker = Worker(
                output_dir=self.output_dir,
                renderers=self.renderers,
                idle_timeout=self.idle_timeout,
                poll_interval=self.poll_interval,
                poll_attempts=self.poll_attempts,
                events_file=self.events_file,
            )
        except BaseException:
            server.server_close()
            raise

        server.register_instance(WorkerService(worker))
        handle = LocalHandle(worker, server)
        self._local = handle

        serve_thread = threading.Thread(
            target=server.serve_forever,
            name=f"imaginator-rpc-{worker.worker_id}",
            daemon=True,
        )
        worker_thread = threading.Thread(
            target=self._run_worker,
            args=(handle,),
            name=f"imaginator-worker-{worker.worker_id}",
            daemon=True,
        )
        serve_thread.start()
        worker_thread.start()
        handle.threads = [serve_thread, worker_thread]

        _log_info(f"Spawned worker {worker.worker_id} on {self.endpoint}")
        return handle

    def _run_worker(self, handle: LocalHandle) -> None:
        try:
            handle.worker.run()
        finally:
            self._release(handle)

    def _release(self, handle: LocalHandle) -> None:
        # The endpoint is freed before taking the lock: a resolve() holding
        # the lock may be waiting to bind it
        handle.server.shutdown()
        handle.server.server_close()
        with self._lock:
            if self._handle is handle:
                self._handle = None
                self._state = HandleState.UNBOUND
        _log_info(f"Released {self.endpoint} (worker {handle.worker.worker_id} stopped)")
        handle.released.set()

    def invalidate(self, handle: WorkerHandle) -> None:
        """Forget a cached handle that turned out to be dead."""
        with self._lock:
            if self._handle is handle:
                _log_debug(f"Dropping handle {handle!r}")
                self._handle = None
                self._state = HandleState.UNBOUND

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the last worker spawned by this locator has released the endpoint.

        Returns:
            True if no local worker is running anymore
        """
        local = self._local
        if local is None:
            return True
        return local.released.wait(timeout)

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """Stop a local worker (after draining its queue) and wait for teardown."""
        local = self._local
        if local is not None:
            local.worker.stop()
        return self.join(timeout)

    def __repr__(self) -> str:
        return f"ServiceLocator(endpoint='{self.endpoint}', state={self.state.value})"


_locators: Dict[str, ServiceLocator] = {}
_locators_lock = threading.Lock()


def get_locator(endpoint: Union[str, Endpoint] = DEFAULT_ENDPOINT, **options) -> ServiceLocator:
    """
    Process-wide locator for an endpoint.

    The first call for an endpoint creates the locator with the given options;
    later calls return the same locator and ignore options.
    """
    key = str(Endpoint.parse(endpoint))
    with _locators_lock:
        locator = _locators.get(key)
        if locator is None:
            locator = ServiceLocator(endpoint, **options)
            _locators[key] = locator
        return locator


def resolve(endpoint: Union[str, Endpoint] = DEFAULT_ENDPOINT, **options) -> WorkerHandle:
    """Resolve the worker handle for an endpoint through the process-wide locator."""
    return get_locator(endpoint, **options).resolve()
