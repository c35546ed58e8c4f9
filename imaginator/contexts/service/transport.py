"""
Endpoint transport.

Workers are exported over XML-RPC, either on a Unix domain socket or on TCP.
This module parses endpoint addresses, binds threading XML-RPC servers,
builds client proxies, and provides the cross-process lock taken around the
bind-or-connect decision.

Endpoint formats:
    unix:///tmp/imaginator.sock    Unix socket (absolute path)
    /tmp/imaginator.sock           Unix socket (bare path)
    tcp://127.0.0.1:8765           TCP (http:// is accepted as well)
"""

import contextlib
import errno
import fcntl
import hashlib
import http.client
import os
import socket
import socketserver
import tempfile
import xmlrpc.client
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union
from urllib.parse import urlparse
from xmlrpc.server import SimpleXMLRPCDispatcher, SimpleXMLRPCRequestHandler, SimpleXMLRPCServer

from dotenv import load_dotenv

from imaginator.contexts.service.logger import _log_debug

load_dotenv()
DEFAULT_ENDPOINT = os.getenv(
    "IMAGINATOR_ENDPOINT", f"unix://{Path(tempfile.gettempdir()) / 'imaginator.sock'}"
)
RPC_PATH = "/RPC2"


@dataclass(frozen=True)
class Endpoint:
    """
    Parsed endpoint address.

    Attributes:
        scheme: "unix" or "tcp"
        path: Socket file (unix only)
        host: Host name (tcp only)
        port: Port number (tcp only)
    """

    scheme: str
    path: Optional[Path] = None
    host: Optional[str] = None
    port: Optional[int] = None

    @classmethod
    def parse(cls, address: Union[str, "Endpoint"]) -> "Endpoint":
        """
        Parse an endpoint address.

        Raises:
            ValueError: If the address is empty or has an unsupported scheme
        """
        if isinstance(address, Endpoint):
            return address
        address = str(address).strip()
        if not address:
            raise ValueError("No endpoint given")

        if "://" not in address:
            return cls(scheme="unix", path=Path(address))

        parsed = urlparse(address)
        if parsed.scheme == "unix":
            path = (parsed.netloc + parsed.path) if parsed.netloc else parsed.path
            if not path:
                raise ValueError(f"Missing socket path in endpoint: {address}")
            return cls(scheme="unix", path=Path(path))
        if parsed.scheme in ("tcp", "http"):
            if not parsed.hostname or parsed.port is None:
                raise ValueError(f"TCP endpoint needs host and port: {address}")
            return cls(scheme="tcp", host=parsed.hostname, port=parsed.port)

        raise ValueError(f"Unsupported endpoint scheme '{parsed.scheme}': {address}")

    @property
    def is_unix(self) -> bool:
        return self.scheme == "unix"

    @property
    def lock_path(self) -> Path:
        """Lock file guarding the bind-or-connect decision for this endpoint."""
        if self.is_unix:
            return self.path.with_name(self.path.name + ".lock")
        digest = hashlib.md5(f"{self.host}:{self.port}".encode("utf-8")).hexdigest()[:16]
        return Path(tempfile.gettempdir()) / f"imaginator-{digest}.lock"

    def __str__(self) -> str:
        if self.is_unix:
            return f"unix://{self.path}"
        return f"tcp://{self.host}:{self.port}"


# Servers


class _RequestHandler(SimpleXMLRPCRequestHandler):
    rpc_paths = ("/", RPC_PATH)

    def setup(self) -> None:
        # TCP_NODELAY is not supported on Unix sockets
        if self.request.family == socket.AF_UNIX:
            self.disable_nagle_algorithm = False
        super().setup()

    def address_string(self) -> str:
        # Unix socket peers have no (host, port) address
        if isinstance(self.client_address, tuple) and self.client_address:
            return str(self.client_address[0])
        return "unix"

    def log_message(self, format, *args):
        _log_debug(f"rpc {self.address_string()} {format % args}")


class TCPXMLRPCServer(socketserver.ThreadingMixIn, SimpleXMLRPCServer):
    """XML-RPC server on TCP, one thread per request."""

    daemon_threads = True

    def __init__(self, endpoint: Endpoint):
        self.endpoint = endpoint
        super().__init__(
            (endpoint.host, endpoint.port),
            requestHandler=_RequestHandler,
            logRequests=False,
            allow_none=True,
        )


class UnixXMLRPCServer(socketserver.ThreadingMixIn, socketserver.UnixStreamServer, SimpleXMLRPCDispatcher):
    """XML-RPC server on a Unix domain socket, one thread per request."""

    daemon_threads = True

    def __init__(self, endpoint: Endpoint):
        self.endpoint = endpoint
        self.logRequests = False
        # Unset until bound; server_close() runs on a failed bind too
        self._inode = None
        SimpleXMLRPCDispatcher.__init__(self, allow_none=True, encoding=None)
        endpoint.path.parent.mkdir(parents=True, exist_ok=True)
        socketserver.UnixStreamServer.__init__(
            self, str(endpoint.path), _RequestHandler, bind_and_activate=True
        )
        self._inode = os.stat(endpoint.path).st_ino

    def server_close(self) -> None:
        super().server_close()
        if self._inode is None:
            return
        # Only remove the socket file if it is still ours; a newer worker may
        # already have replaced it
        with contextlib.suppress(FileNotFoundError):
            if os.stat(self.endpoint.path).st_ino == self._inode:
                os.unlink(self.endpoint.path)


def bind(endpoint: Union[str, Endpoint]):
    """
    Bind and activate an XML-RPC server on the endpoint.

    The server is listening when this returns; serve_forever() still has to
    be started.

    Raises:
        OSError: errno EADDRINUSE if the endpoint is already bound
    """
    endpoint = Endpoint.parse(endpoint)
    if endpoint.is_unix:
        return UnixXMLRPCServer(endpoint)
    return TCPXMLRPCServer(endpoint)


def clear_stale(endpoint: Union[str, Endpoint]) -> bool:
    """
    Remove a leftover Unix socket file.

    Only call this after a failed liveness probe, while holding endpoint_lock().

    Returns:
        True if a file was removed
    """
    endpoint = Endpoint.parse(endpoint)
    if not endpoint.is_unix:
        return False
    try:
        os.unlink(endpoint.path)
    except FileNotFoundError:
        return False
    return True


@contextlib.contextmanager
def endpoint_lock(endpoint: Union[str, Endpoint]) -> Iterator[Path]:
    """Exclusive cross-process lock for the endpoint (flock on a lock file)."""
    lock_path = Endpoint.parse(endpoint).lock_path
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lock_path, "a") as lock_file:
        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        try:
            yield lock_path
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)


def is_address_in_use(error: OSError) -> bool:
    return error.errno == errno.EADDRINUSE


# Clients


class _UnixHTTPConnection(http.client.HTTPConnection):
    def __init__(self, socket_path: Path, timeout: Optional[float] = None):
        super().__init__("localhost", timeout=timeout)
        self.socket_path = socket_path

    def connect(self) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            sock.connect(str(self.socket_path))
        except OSError:
            sock.close()
            raise
        self.sock = sock


class UnixTransport(xmlrpc.client.Transport):
    """xmlrpc.client transport speaking HTTP over a Unix domain socket."""

    def __init__(self, socket_path: Path, timeout: Optional[float] = None):
        super().__init__()
        self.socket_path = socket_path
        self.timeout = timeout

    def make_connection(self, host):
        # Kept in _connection so Transport.close() closes it
        connection = _UnixHTTPConnection(self.socket_path, timeout=self.timeout)
        self._connection = host, connection
        return connection


class TimeoutTransport(xmlrpc.client.Transport):
    """Default HTTP transport with a socket timeout."""

    def __init__(self, timeout: Optional[float] = None):
        super().__init__()
        self.timeout = timeout

    def make_connection(self, host):
        connection = super().make_connection(host)
        connection.timeout = self.timeout
        return connection


def connect(endpoint: Union[str, Endpoint], timeout: Optional[float] = None) -> xmlrpc.client.ServerProxy:
    """
    Client proxy for the endpoint.

    Proxies are cheap and not thread-safe; create one per call.
    """
    endpoint = Endpoint.parse(endpoint)
    if endpoint.is_unix:
        return xmlrpc.client.ServerProxy(
            f"http://localhost{RPC_PATH}",
            transport=UnixTransport(endpoint.path, timeout=timeout),
            allow_none=True,
        )
    return xmlrpc.client.ServerProxy(
        f"http://{endpoint.host}:{endpoint.port}{RPC_PATH}",
        transport=TimeoutTransport(timeout=timeout),
        allow_none=True,
    )
