"""Unit tests for endpoint parsing and the XML-RPC transport."""

import os
import socket
import threading
from pathlib import Path

import pytest

from imaginator.contexts.service.transport import (
    Endpoint,
    bind,
    clear_stale,
    connect,
    endpoint_lock,
    is_address_in_use,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    "address, expected",
    [
        ("unix:///tmp/w.sock", Endpoint(scheme="unix", path=Path("/tmp/w.sock"))),
        ("/tmp/w.sock", Endpoint(scheme="unix", path=Path("/tmp/w.sock"))),
        ("tcp://127.0.0.1:8765", Endpoint(scheme="tcp", host="127.0.0.1", port=8765)),
        ("http://localhost:9000", Endpoint(scheme="tcp", host="localhost", port=9000)),
    ],
)
def test_parse(address, expected):
    assert Endpoint.parse(address) == expected


@pytest.mark.unit
@pytest.mark.parametrize("address", ["", "ftp://host:21", "tcp://host", "unix://"])
def test_parse_rejects(address):
    with pytest.raises(ValueError):
        Endpoint.parse(address)


@pytest.mark.unit
def test_str_and_lock_path():
    unix = Endpoint.parse("/tmp/w.sock")
    tcp = Endpoint.parse("tcp://127.0.0.1:8765")

    assert str(unix) == "unix:///tmp/w.sock"
    assert unix.lock_path == Path("/tmp/w.sock.lock")
    assert str(tcp) == "tcp://127.0.0.1:8765"
    assert tcp.lock_path.name.startswith("imaginator-")
    assert Endpoint.parse(str(tcp)) == tcp


@pytest.fixture
def echo_server(endpoint):
    server = bind(endpoint)
    server.register_function(lambda value: value, "echo")
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.mark.unit
def test_unix_round_trip(echo_server, endpoint):
    with connect(endpoint, timeout=2) as proxy:
        assert proxy.echo({"a": [1, None]}) == {"a": [1, None]}


@pytest.mark.unit
def test_second_bind_reports_address_in_use(echo_server, endpoint):
    with pytest.raises(OSError) as exc_info:
        bind(endpoint)

    assert is_address_in_use(exc_info.value)


@pytest.mark.unit
def test_server_close_removes_own_socket(endpoint):
    server = bind(endpoint)
    path = Endpoint.parse(endpoint).path
    assert path.exists()

    server.server_close()

    assert not path.exists()


@pytest.mark.unit
def test_server_close_keeps_replaced_socket(endpoint):
    server = bind(endpoint)
    path = Endpoint.parse(endpoint).path
    replacement = path.with_name("newer")
    replacement.write_text("newer worker")
    os.replace(replacement, path)

    server.server_close()

    assert path.exists()


@pytest.mark.unit
def test_clear_stale(endpoint):
    path = Endpoint.parse(endpoint).path
    stale = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    stale.bind(str(path))
    stale.close()

    assert clear_stale(endpoint)
    assert not path.exists()
    assert not clear_stale(endpoint)
    assert not clear_stale("tcp://127.0.0.1:8765")


@pytest.mark.unit
def test_endpoint_lock_creates_lock_file(endpoint):
    with endpoint_lock(endpoint) as lock_path:
        assert lock_path.exists()
        assert lock_path == Endpoint.parse(endpoint).lock_path
