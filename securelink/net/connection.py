"""
Connection lifecycle and duplex I/O.

A Connection owns one SecureStream and moves through

    IDLE -> CONNECTING -> HANDSHAKING -> RUNNING -> STOPPING -> STOPPED

never backwards. While RUNNING a dedicated reader thread hands inbound
messages to the consumer in wire order; outbound sends run on the caller's
thread. The teardown guard serializes stop() against sends, so a send either
completes before the stream closes or raises ClosedError.

Callbacks run on the reader thread (or on the caller's thread for setup
failures). A GUI has to marshal them onto its own thread.
"""

import logging
import threading
from enum import Enum
from typing import Callable, Optional

from securelink.common.exceptions import (
    SecureLinkError, ReadError, WriteError, ClosedError, ConnectionStateError
)
from securelink.common.protocol import Framing, CHUNK_SIZE
from securelink.common.utils import format_address, now_ms
from securelink.crypto.context import TLSContext
from .framing import make_framer
from .stream import SecureStream

logger = logging.getLogger(__name__)

JOIN_TIMEOUT = 5.0

MessageHandler = Callable[["Connection", bytes], None]
ErrorHandler = Callable[["Connection", str], None]


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class Connection:
    """
    One secure session plus its reader thread.

    Args:
        on_message: Called as on_message(connection, data) for every inbound
            message, in order, on the reader thread
        on_error: Called as on_error(connection, description) at most once,
            when the connection fails or the peer goes away; never for a
            local stop()
        framing: RAW delivers chunks as received, LINE delivers
            newline-terminated messages
        chunk_size: Size of the receive buffer
        name: Label used in logs and the reader thread's name
    """

    def __init__(
        self,
        on_message: MessageHandler,
        on_error: Optional[ErrorHandler] = None,
        framing: Framing = Framing.RAW,
        chunk_size: int = CHUNK_SIZE,
        name: Optional[str] = None,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._on_message = on_message
        self._on_error = on_error
        self._framer = make_framer(framing)
        self._chunk_size = chunk_size
        self.name = name

        # Teardown guard. Re-entrant so callbacks running under it (on_error)
        # may call send_message() or stop() and get a clean ClosedError/no-op.
        self._guard = threading.RLock()
        self._state = ConnectionState.IDLE
        self._stream: Optional[SecureStream] = None
        self._reader: Optional[threading.Thread] = None
        self._error_reported = False

        self.remote = None
        self.connected_at: Optional[int] = None

    def __repr__(self):
        label = self.name or (format_address(self.remote) if self.remote else "unbound")
        return f"<Connection {label} {self._state.value}>"

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is ConnectionState.RUNNING

    @property
    def stream(self) -> Optional[SecureStream]:
        return self._stream

    @property
    def reader(self) -> Optional[threading.Thread]:
        return self._reader

    def _begin(self, first_state: ConnectionState, remote):
        with self._guard:
            if self._state is not ConnectionState.IDLE:
                raise ConnectionStateError(f"connection is already {self._state.value}")
            self._state = first_state
            self.remote = remote

    def _advance(self, expected: ConnectionState, new: ConnectionState) -> bool:
        with self._guard:
            if self._state is not expected:
                return False
            self._state = new
            return True

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def connect(self, context: TLSContext, host: str, port: int,
                timeout: Optional[float] = None) -> "Connection":
        """
        Connect to a server, handshake, and start the reader thread.

        Raises:
            ConnectError: Resolution or TCP connect failed
            HandshakeError: TLS negotiation failed
            ClosedError: stop() was called while connecting
            ConnectionStateError: The connection was used before
        """
        self._begin(ConnectionState.CONNECTING, (host, port))
        stream = None
        try:
            raw = SecureStream.open_transport(host, port, timeout=timeout)
            if not self._advance(ConnectionState.CONNECTING, ConnectionState.HANDSHAKING):
                raw.close()
                raise ClosedError("connection stopped while connecting")
            stream = SecureStream.client_handshake(context, raw, host, port)
            self._start(stream)
        except Exception as e:
            if stream is not None:
                stream.close()
            self._fail_setup(e)
            raise
        return self

    def accept(self, context: TLSContext, raw_sock, address,
               timeout: Optional[float] = None) -> "Connection":
        """
        Handshake an accepted socket and start the reader thread.

        Raises:
            HandshakeError: TLS negotiation failed; raw_sock is closed
            ClosedError: stop() was called during the handshake
            ConnectionStateError: The connection was used before
        """
        self._begin(ConnectionState.HANDSHAKING, address)
        stream = None
        try:
            stream = SecureStream.accept_handshake(context, raw_sock, address, timeout=timeout)
            self._start(stream)
        except Exception as e:
            if stream is not None:
                stream.close()
            else:
                raw_sock.close()
            self._fail_setup(e)
            raise
        return self

    def _fail_setup(self, error: Exception):
        with self._guard:
            stopped_locally = self._state is ConnectionState.STOPPED
            self._state = ConnectionState.STOPPED
            if not stopped_locally:
                self._report(error)

    def _start(self, stream: SecureStream):
        with self._guard:
            if self._state is not ConnectionState.HANDSHAKING:
                stream.close()
                raise ClosedError("connection stopped during handshake")
            self._stream = stream
            self._state = ConnectionState.RUNNING
            self.connected_at = now_ms()
            reader = threading.Thread(
                target=self._read_loop,
                name=f"reader-{self.name or format_address(self.remote)}",
                daemon=True,
            )
            reader.start()
            self._reader = reader

        logger.info("Secure connection established with %s (%s)",
                    format_address(self.remote), stream.version())

    # ------------------------------------------------------------------
    # Duplex I/O
    # ------------------------------------------------------------------

    def send_message(self, data):
        """
        Send one payload (str is UTF-8 encoded).

        Safe to call from any thread, including from on_message.

        Raises:
            ClosedError: The connection is not running
            WriteError: The transport failed; the connection is stopped and
                on_error has been called
        """
        if isinstance(data, str):
            data = data.encode("utf-8")

        with self._guard:
            if self._state is not ConnectionState.RUNNING:
                raise ClosedError(f"connection is {self._state.value}")
            try:
                self._stream.write_all(data)
            except WriteError as e:
                self._shutdown(e)
                raise

    def _read_loop(self):
        buffer = bytearray(self._chunk_size)
        view = memoryview(buffer)
        error = None

        try:
            while True:
                count = self._stream.read_chunk(view)
                if count == 0:
                    self._deliver(self._framer.flush())
                    error = ReadError("connection closed by peer")
                    break
                self._deliver(self._framer.feed(bytes(view[:count])))
        except ClosedError:
            pass  # stopped locally
        except SecureLinkError as e:
            error = e
        except Exception as e:
            logger.exception("Message handler for %r failed", self)
            error = e

        self._shutdown(error)

    def _deliver(self, messages):
        for message in messages:
            self._on_message(self, message)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _report(self, error):
        if self._error_reported:
            return
        self._error_reported = True
        if self._on_error is None:
            return
        try:
            self._on_error(self, str(error))
        except Exception:
            logger.exception("Error callback for %r failed", self)

    def _shutdown(self, error=None) -> bool:
        """Perform the stop transition once; returns False if another caller did."""
        stream = self._stream
        if stream is not None and self._state is ConnectionState.RUNNING:
            # A send_message() blocked in write_all() holds the guard until this
            stream.interrupt()

        with self._guard:
            if self._state in (ConnectionState.STOPPING, ConnectionState.STOPPED):
                return False
            if self._state is not ConnectionState.RUNNING:
                # Stopped before setup finished; connect()/accept() clean up
                self._state = ConnectionState.STOPPED
                return True

            self._state = ConnectionState.STOPPING
            if error is not None:
                self._report(error)
            self._stream.close()
            self._state = ConnectionState.STOPPED

        elapsed = (now_ms() - self.connected_at) / 1000 if self.connected_at else 0.0
        if error is not None:
            logger.info("Connection with %s ended after %.1fs: %s",
                        format_address(self.remote), elapsed, error)
        else:
            logger.info("Connection with %s closed after %.1fs",
                        format_address(self.remote), elapsed)
        return True

    def stop(self, timeout: Optional[float] = JOIN_TIMEOUT):
        """
        Close the connection. Idempotent and thread-safe.

        Concurrent callers wait for the first one to finish. A send blocked
        on a peer that stopped reading is interrupted and raises ClosedError.
        The reader thread is joined unless stop() is called from it.
        """
        self._shutdown()
        self.join(timeout)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the reader thread; True if it has exited (or never started)."""
        reader = self._reader
        if reader is None or reader is threading.current_thread():
            return reader is None
        reader.join(timeout)
        return not reader.is_alive()
