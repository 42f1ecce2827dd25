"""
Secure transport for SecureLink.

Includes:
- SecureStream: one TLS session over one TCP socket
- Connection: lifecycle state machine plus reader thread
- EchoServer: acceptor loop with the echo consumer
"""

from .stream import SecureStream
from .connection import Connection, ConnectionState
from .acceptor import EchoServer, echo_handler
from .framing import LineFramer, RawFramer

__all__ = [
    'SecureStream',
    'Connection',
    'ConnectionState',
    'EchoServer',
    'echo_handler',
    'LineFramer',
    'RawFramer',
]
