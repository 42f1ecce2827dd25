"""
Secure Stream

One TCP socket wrapped in one TLS session. A stream only exists once its
handshake has completed; after close() every read or write raises
ClosedError instead of touching the socket.
"""

import logging
import socket
import ssl
import threading
from typing import Optional

from securelink.common.exceptions import (
    ConnectError, HandshakeError, ReadError, WriteError, ClosedError
)
from securelink.common.protocol import Role
from securelink.common.utils import format_address
from securelink.crypto.context import TLSContext

logger = logging.getLogger(__name__)


def _close_quietly(sock):
    try:
        sock.close()
    except OSError:
        pass


class SecureStream:
    """A handshaken TLS socket; exclusively owned by one Connection."""

    def __init__(self, sock: ssl.SSLSocket, role: Role, peer):
        self._sock = sock
        self.role = role
        self.peer = peer
        self.handshake_complete = True
        self._closed = False
        self._interrupted = False
        self._close_lock = threading.Lock()

    def __repr__(self):
        state = "closed" if self._closed else "open"
        return f"<SecureStream {self.role.value} peer={format_address(self.peer)} {state}>"

    @classmethod
    def connect(cls, context: TLSContext, host: str, port: int,
                timeout: Optional[float] = None) -> "SecureStream":
        """
        Open a TCP connection and perform a client-side TLS handshake.

        Args:
            context: Client TLS context
            host: Server host name or address (also used for SNI and
                certificate host name matching)
            port: Server port
            timeout: Seconds allowed for connect and handshake each; the
                established stream is blocking

        Raises:
            ConnectError: Resolution or TCP connect failed
            HandshakeError: TLS negotiation or certificate verification failed
        """
        if context.role is not Role.CLIENT:
            raise ValueError("SecureStream.connect needs a client context")

        raw = cls.open_transport(host, port, timeout=timeout)
        return cls.client_handshake(context, raw, host, port)

    @staticmethod
    def open_transport(host: str, port: int, timeout: Optional[float] = None) -> socket.socket:
        """Resolve host and open the TCP connection (no TLS yet)."""
        try:
            return socket.create_connection((host, port), timeout=timeout)
        except OSError as e:
            raise ConnectError(f"Cannot connect to {host}:{port}: {e}") from e

    @classmethod
    def client_handshake(cls, context: TLSContext, raw: socket.socket,
                         host: str, port: int) -> "SecureStream":
        """Client-side TLS handshake on a connected socket; raw is closed on failure."""
        if context.role is not Role.CLIENT:
            _close_quietly(raw)
            raise ValueError("client_handshake needs a client context")

        try:
            tls = context.wrap(raw, server_hostname=host)
        except (OSError, ValueError) as e:
            _close_quietly(raw)
            raise HandshakeError(f"Cannot start TLS with {host}:{port}: {e}") from e

        return cls._finish_handshake(tls, Role.CLIENT, (host, port))

    @classmethod
    def accept_handshake(cls, context: TLSContext, raw_sock: socket.socket, address,
                         timeout: Optional[float] = None) -> "SecureStream":
        """
        Perform a server-side TLS handshake on an accepted socket.

        Args:
            context: Server TLS context
            raw_sock: Socket returned by accept()
            address: Peer address returned by accept()
            timeout: Seconds allowed for the handshake

        Raises:
            HandshakeError: TLS negotiation failed; raw_sock is closed
            ValueError: context is not a server context; raw_sock is closed
        """
        if context.role is not Role.SERVER:
            _close_quietly(raw_sock)
            raise ValueError("SecureStream.accept_handshake needs a server context")

        try:
            raw_sock.settimeout(timeout)
            tls = context.wrap(raw_sock)
        except (OSError, ValueError) as e:
            _close_quietly(raw_sock)
            raise HandshakeError(f"Cannot start TLS with {format_address(address)}: {e}") from e

        return cls._finish_handshake(tls, Role.SERVER, address)

    @classmethod
    def _finish_handshake(cls, tls: ssl.SSLSocket, role: Role, peer) -> "SecureStream":
        try:
            tls.do_handshake()
            tls.settimeout(None)
        except (OSError, ValueError) as e:
            # ssl.SSLError and ssl.SSLCertVerificationError are OSErrors
            _close_quietly(tls)
            raise HandshakeError(f"TLS handshake with {format_address(peer)} failed: {e}") from e

        stream = cls(tls, role, peer)
        logger.debug(
            "Handshake complete with %s (%s, %s)",
            format_address(peer), stream.version(), stream.cipher()
        )
        return stream

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def _closing(self) -> bool:
        return self._closed or self._interrupted

    def version(self) -> Optional[str]:
        """Negotiated protocol version, e.g. 'TLSv1.3'."""
        if self._closed:
            return None
        return self._sock.version()

    def cipher(self) -> Optional[str]:
        """Negotiated cipher suite name."""
        if self._closed:
            return None
        cipher = self._sock.cipher()
        return cipher[0] if cipher else None

    def peer_certificate(self) -> Optional[dict]:
        """Decoded peer certificate, if the peer presented a verified one."""
        if self._closed:
            return None
        return self._sock.getpeercert()

    def read_chunk(self, buffer) -> int:
        """
        Blocking receive of up to len(buffer) bytes into buffer.

        Returns:
            Number of bytes read; 0 means the peer closed the session

        Raises:
            ReadError: Transport or TLS failure
            ClosedError: The stream was closed locally (before or during the call)
        """
        if self._closing:
            raise ClosedError("read on closed stream")
        try:
            count = self._sock.recv_into(buffer)
        except (OSError, ValueError) as e:
            if self._closing:
                raise ClosedError("stream closed during read") from e
            raise ReadError(f"Read from {format_address(self.peer)} failed: {e}") from e
        if count == 0 and self._closing:
            # Local shutdown looks like EOF to the blocked reader
            raise ClosedError("stream closed during read")
        return count

    def write_all(self, data: bytes):
        """
        Blocking send of the whole payload.

        Raises:
            WriteError: Transport or TLS failure
            ClosedError: The stream was closed locally
        """
        if self._closing:
            raise ClosedError("write on closed stream")
        try:
            self._sock.sendall(data)
        except (OSError, ValueError) as e:
            if self._closing:
                raise ClosedError("stream closed during write") from e
            raise WriteError(f"Write to {format_address(self.peer)} failed: {e}") from e

    def interrupt(self):
        """
        Shut the socket down without releasing it. Idempotent.

        A thread blocked in read_chunk() or write_all() wakes up with
        ClosedError; close() still has to be called to release the socket.
        """
        with self._close_lock:
            if self._closing:
                return
            self._interrupted = True
            try:
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # Peer already gone

    def close(self) -> bool:
        """
        Close the stream. Idempotent.

        The socket is shut down in both directions first so a thread blocked
        in read_chunk() or write_all() wakes up.

        Returns:
            True if this call closed the socket, False if it was already closed
        """
        with self._close_lock:
            if self._closed:
                return False
            self._closed = True

            if not self._interrupted:
                try:
                    self._sock.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass  # Peer already gone
            self._sock.close()
        return True
