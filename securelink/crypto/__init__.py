"""
TLS configuration and certificate handling for SecureLink.

This package provides:
- Client and server TLS contexts
- X.509 certificate / private key loading and inspection (PKI)
- A development CA for issuing server certificates
"""

from .context import TLSContext, TrustMode, new_client_context, new_server_context
from .pki import (
    load_certificate, load_certificate_chain, load_private_key,
    get_certificate_fingerprint, get_common_name
)

__all__ = [
    'TLSContext',
    'TrustMode',
    'new_client_context',
    'new_server_context',
    'load_certificate',
    'load_certificate_chain',
    'load_private_key',
    'get_certificate_fingerprint',
    'get_common_name',
]
