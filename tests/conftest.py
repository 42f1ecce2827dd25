"""
pytest configuration and fixtures.
"""

import socket
import threading
from dataclasses import dataclass
from typing import Generator, Optional
import pytest

from securelink.common.protocol import Framing
from securelink.crypto import TLSContext, new_client_context, new_server_context
from securelink.crypto.certs import generate_root_ca, issue_certificate, save_certificate_and_key
from securelink.net import EchoServer


WAIT_TIMEOUT = 10.0


@dataclass
class PKIFiles:
    """Paths of the throwaway PKI generated for the test session."""
    ca_cert: str
    ca_key: str
    server_cert: str
    server_key: str
    rogue_ca_cert: str
    rogue_ca_key: str


@pytest.fixture(scope="session")
def pki(tmp_path_factory) -> PKIFiles:
    """A CA, a localhost server certificate it signed, and an unrelated CA."""
    base = tmp_path_factory.mktemp("pki")
    files = PKIFiles(
        ca_cert=str(base / "ca.crt"),
        ca_key=str(base / "ca.key"),
        server_cert=str(base / "server.crt"),
        server_key=str(base / "server.key"),
        rogue_ca_cert=str(base / "rogue.crt"),
        rogue_ca_key=str(base / "rogue.key"),
    )

    ca_key, ca_cert = generate_root_ca("SecureLink Test CA")
    save_certificate_and_key(ca_key, ca_cert, files.ca_cert, files.ca_key)

    server_key, server_cert = issue_certificate("localhost", ca_cert, ca_key)
    save_certificate_and_key(server_key, server_cert, files.server_cert, files.server_key)

    rogue_key, rogue_cert = generate_root_ca("Rogue CA")
    save_certificate_and_key(rogue_key, rogue_cert, files.rogue_ca_cert, files.rogue_ca_key)

    return files


@pytest.fixture(scope="session")
def server_context(pki: PKIFiles) -> TLSContext:
    return new_server_context(pki.server_cert, pki.server_key)


@pytest.fixture(scope="session")
def client_context(pki: PKIFiles) -> TLSContext:
    """Client context trusting the test CA."""
    return new_client_context(cafile=pki.ca_cert)


@pytest.fixture(scope="session")
def untrusted_client_context(pki: PKIFiles) -> TLSContext:
    """Client context trusting only a CA that did not sign the server."""
    return new_client_context(cafile=pki.rogue_ca_cert)


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class Collector:
    """Thread-safe sink for on_message / on_error callbacks."""

    def __init__(self):
        self.messages = []
        self.errors = []
        self.threads = set()
        self._cond = threading.Condition()

    def on_message(self, connection, data):
        with self._cond:
            self.messages.append(data)
            self.threads.add(threading.current_thread().name)
            self._cond.notify_all()

    def on_error(self, connection, description):
        with self._cond:
            self.errors.append(description)
            self._cond.notify_all()

    def wait_for_messages(self, count: int, timeout: float = WAIT_TIMEOUT) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: len(self.messages) >= count, timeout)

    def wait_for_bytes(self, count: int, timeout: float = WAIT_TIMEOUT) -> bool:
        with self._cond:
            return self._cond.wait_for(
                lambda: sum(len(m) for m in self.messages) >= count, timeout
            )

    def wait_for_error(self, timeout: float = WAIT_TIMEOUT) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: len(self.errors) >= 1, timeout)


@pytest.fixture
def collector() -> Collector:
    return Collector()


@pytest.fixture
def make_collector():
    """Factory for tests that need one collector per connection."""
    return Collector


class ServerThread:
    """Runs an EchoServer in a background thread."""

    def __init__(self, server: EchoServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.server_address[1]

    def start(self):
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()
        if not self.server.wait_until_listening(WAIT_TIMEOUT):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=WAIT_TIMEOUT)


def _run_server(context: TLSContext, framing: Framing) -> Generator[ServerThread, None, None]:
    server = EchoServer(
        context,
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        framing=framing,
        handshake_timeout=5.0,
    )
    running = ServerThread(server)
    running.start()
    yield running
    running.stop()


@pytest.fixture
def echo_server(server_context: TLSContext) -> Generator[ServerThread, None, None]:
    """Line-framed echo server on 127.0.0.1."""
    yield from _run_server(server_context, Framing.LINE)


@pytest.fixture
def raw_echo_server(server_context: TLSContext) -> Generator[ServerThread, None, None]:
    """Echo server that answers every received chunk as-is."""
    yield from _run_server(server_context, Framing.RAW)
