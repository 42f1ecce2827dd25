"""
Utility functions for SecureLink.
"""

import hashlib
import time


def now_ms() -> int:
    """
    Get current Unix timestamp in milliseconds.

    Returns:
        Current timestamp in milliseconds
    """
    return int(time.time() * 1000)


def sha256_hex(data: bytes) -> str:
    """
    Compute SHA-256 hash and return as hex string.

    Args:
        data: Data to hash

    Returns:
        Hex-encoded SHA-256 hash
    """
    return hashlib.sha256(data).hexdigest()


def format_address(address) -> str:
    """
    Render a socket address as host:port.

    IPv6 hosts are bracketed. Anything that is not a (host, port, ...) tuple
    is returned via str().
    """
    if isinstance(address, tuple) and len(address) >= 2:
        host, port = address[0], address[1]
        if ":" in str(host):
            return f"[{host}]:{port}"
        return f"{host}:{port}"
    return str(address)


def preview(data: bytes, limit: int = 64) -> str:
    """Short printable rendering of a payload for log lines."""
    text = data.decode("utf-8", errors="replace").rstrip("\r\n")
    if len(text) > limit:
        return text[:limit] + "..."
    return text
