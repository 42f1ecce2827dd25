"""
Common utilities, wire constants and configuration for SecureLink.
"""

from .protocol import *
from .utils import now_ms, sha256_hex, format_address
from .exceptions import *

__all__ = [
    'now_ms',
    'sha256_hex',
    'format_address',
]
