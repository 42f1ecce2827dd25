"""
Wire-level constants shared by the client and the server.

The application payload is unstructured text carried over TLS. Callers
usually terminate each message with a newline, which is what line framing
splits on.
"""

from enum import Enum


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 12345

ECHO_PREFIX = b"Echo: "
LINE_DELIMITER = b"\n"

# Receive buffer for one read_chunk call
CHUNK_SIZE = 1024

# Line framing gives up waiting for a delimiter after this many bytes
MAX_LINE_BYTES = 64 * 1024


class Framing(str, Enum):
    """How inbound bytes are cut into messages before reaching the consumer."""
    RAW = "raw"
    LINE = "line"


class Role(str, Enum):
    """Side of the TLS handshake."""
    CLIENT = "client"
    SERVER = "server"
