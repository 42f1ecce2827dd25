"""
Server acceptor loop.

Accepts TCP connections, performs each TLS handshake synchronously on the
acceptor thread, then lets the new Connection run on its own reader thread
while the loop goes straight back to accept(). There is no cap on the
number of live connections.

The default consumer is the echo behavior: every received message is sent
back on the same connection prefixed with "Echo: ".
"""

import logging
import socket
import threading
from typing import List, Optional

from securelink.common.exceptions import BindError, ClosedError, HandshakeError
from securelink.common.protocol import ECHO_PREFIX, Framing, DEFAULT_PORT
from securelink.common.utils import format_address, preview
from securelink.crypto.context import TLSContext
from .connection import Connection, ConnectionState, MessageHandler

logger = logging.getLogger(__name__)

# accept() wakes up this often to notice shutdown()
ACCEPT_POLL_INTERVAL = 1.0


def echo_handler(connection: Connection, data: bytes):
    """Send the received bytes back, prefixed with "Echo: "."""
    logger.info("Received from %s: %s", format_address(connection.remote), preview(data))
    connection.send_message(ECHO_PREFIX + data)


def _log_connection_error(connection: Connection, description: str):
    logger.info("Client %s disconnected: %s", format_address(connection.remote), description)


class EchoServer:
    """
    TLS server running one Connection per client.

    Args:
        context: Server TLS context
        host: Interface to bind
        port: Port to bind; 0 picks a free one (see server_address)
        handler: Message consumer for every connection
        framing: Framing applied to every connection
        handshake_timeout: Seconds a client gets to complete its handshake
        backlog: Listen queue length
    """

    def __init__(
        self,
        context: TLSContext,
        host: str = "0.0.0.0",
        port: int = DEFAULT_PORT,
        handler: MessageHandler = echo_handler,
        framing: Framing = Framing.LINE,
        handshake_timeout: Optional[float] = 10.0,
        backlog: int = 128,
    ):
        self.context = context
        self.host = host
        self.port = port
        self.handler = handler
        self.framing = framing
        self.handshake_timeout = handshake_timeout
        self.backlog = backlog

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._listening = threading.Event()
        self._stopped = threading.Event()
        self._lock = threading.Lock()
        self._connections: List[Connection] = []
        self.server_address = None

    # ------------------------------------------------------------------
    # Listening socket
    # ------------------------------------------------------------------

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
            sock.listen(self.backlog)
        except OSError as e:
            sock.close()
            logger.error("Failed to bind to %s:%s: %s", self.host, self.port, e)
            raise BindError(f"Cannot listen on {self.host}:{self.port}: {e}") from e
        sock.settimeout(ACCEPT_POLL_INTERVAL)
        return sock

    def serve_forever(self):
        """
        Bind and run the accept loop until shutdown().

        Raises:
            BindError: The listening endpoint could not be bound
        """
        self._stopped.clear()
        try:
            self._socket = self._bind()
        except BindError:
            self._stopped.set()
            raise

        self.server_address = self._socket.getsockname()
        self._running = True
        self._listening.set()
        logger.info("Secure server listening on %s", format_address(self.server_address))

        try:
            self._accept_loop()
        finally:
            self._cleanup()

    def _accept_loop(self):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                # Socket error - usually means we're shutting down
                if self._running:
                    logger.error("Accept error: %s", e)
                break

            logger.debug("Accepted connection from %s", format_address(client_address))
            self._handle(client_socket, client_address)

    def _handle(self, client_socket, client_address):
        """Handshake one client; a failure only affects that client."""
        connection = Connection(
            on_message=self.handler,
            on_error=_log_connection_error,
            framing=self.framing,
        )
        try:
            connection.accept(self.context, client_socket, client_address,
                              timeout=self.handshake_timeout)
        except HandshakeError as e:
            logger.warning("Rejected %s: %s", format_address(client_address), e)
            return
        except ClosedError:
            return
        except Exception:
            logger.exception("Failed to set up connection with %s", format_address(client_address))
            return

        with self._lock:
            self._connections = [c for c in self._connections
                                 if c.state is not ConnectionState.STOPPED]
            self._connections.append(connection)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def connections(self) -> List[Connection]:
        """Snapshot of the connections that have not stopped yet."""
        with self._lock:
            return [c for c in self._connections if c.state is not ConnectionState.STOPPED]

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        return self._listening.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._stopped.wait(timeout)

    def shutdown(self):
        """Stop accepting and close every live connection. Idempotent."""
        if self._running:
            logger.info("Shutting down secure server...")
        self._running = False
        sock = self._socket
        if sock is not None:
            try:
                # Wakes a blocked accept() on Linux; elsewhere the poll interval does
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # Not connected / already closed

    def _cleanup(self):
        self._running = False
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        with self._lock:
            connections, self._connections = self._connections, []
        for connection in connections:
            connection.stop()

        self._listening.clear()
        self._stopped.set()
        logger.info("Secure server stopped")
