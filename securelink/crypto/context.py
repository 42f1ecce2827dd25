"""
TLS Contexts

A TLSContext is built once at startup and shared read-only by every
connection. Client contexts trust the system root store unless a CA bundle
is given; server contexts carry the certificate chain and private key.
"""

import logging
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from securelink.common.exceptions import CredentialError
from securelink.common.protocol import Role
from .pki import (
    load_certificate_chain, load_private_key, key_matches_certificate,
    check_validity, get_common_name, get_certificate_fingerprint
)

logger = logging.getLogger(__name__)

MINIMUM_VERSION = ssl.TLSVersion.TLSv1_2


class TrustMode(str, Enum):
    """Where a client context gets its trust anchors from."""
    SYSTEM = "system"
    CUSTOM = "custom"


@dataclass(frozen=True)
class TLSContext:
    """Immutable TLS configuration; manufactures secure streams."""
    role: Role
    ssl_context: ssl.SSLContext
    trust_mode: Optional[TrustMode] = None
    common_name: Optional[str] = None
    fingerprint: Optional[str] = None

    @property
    def minimum_version(self) -> ssl.TLSVersion:
        return self.ssl_context.minimum_version

    def wrap(self, sock, server_hostname: Optional[str] = None) -> ssl.SSLSocket:
        """Wrap a connected TCP socket; the handshake is left to the caller."""
        if self.role is Role.SERVER:
            return self.ssl_context.wrap_socket(
                sock, server_side=True, do_handshake_on_connect=False
            )
        return self.ssl_context.wrap_socket(
            sock, server_hostname=server_hostname, do_handshake_on_connect=False
        )


def new_client_context(cafile: Optional[str] = None, check_hostname: bool = True) -> TLSContext:
    """
    Create a client context.

    Args:
        cafile: PEM bundle of CAs to trust instead of the system roots
        check_hostname: Match the server certificate against the host name

    Returns:
        Client TLSContext

    Raises:
        CredentialError: If the CA bundle cannot be loaded
    """
    try:
        ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=cafile)
    except (OSError, ssl.SSLError) as e:
        raise CredentialError(f"Cannot load CA bundle '{cafile}': {e}") from e

    ctx.minimum_version = MINIMUM_VERSION
    ctx.check_hostname = check_hostname
    ctx.verify_mode = ssl.CERT_REQUIRED

    trust_mode = TrustMode.CUSTOM if cafile else TrustMode.SYSTEM
    logger.debug("Client TLS context ready (trust: %s)", trust_mode.value)
    return TLSContext(role=Role.CLIENT, ssl_context=ctx, trust_mode=trust_mode)


def new_server_context(cert_path: str, key_path: str) -> TLSContext:
    """
    Create a server context loaded with a certificate chain and private key.

    Args:
        cert_path: PEM certificate chain (leaf first)
        key_path: PEM private key, unencrypted

    Returns:
        Server TLSContext

    Raises:
        CredentialError: If either file is unreadable or malformed, or the key
            does not belong to the certificate
    """
    chain = load_certificate_chain(cert_path)
    private_key = load_private_key(key_path)
    leaf = chain[0]

    if not key_matches_certificate(private_key, leaf):
        raise CredentialError(f"Private key '{key_path}' does not match certificate '{cert_path}'")

    is_valid, msg = check_validity(leaf)
    if not is_valid:
        logger.warning("Server certificate '%s': %s", cert_path, msg)

    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.minimum_version = MINIMUM_VERSION
    try:
        ctx.load_cert_chain(cert_path, key_path)
    except (OSError, ssl.SSLError) as e:
        raise CredentialError(f"OpenSSL rejected '{cert_path}' / '{key_path}': {e}") from e

    common_name = get_common_name(leaf)
    logger.debug("Server TLS context ready (CN=%s)", common_name)
    return TLSContext(
        role=Role.SERVER,
        ssl_context=ctx,
        common_name=common_name,
        fingerprint=get_certificate_fingerprint(leaf),
    )
