"""
Custom exceptions for SecureLink.
"""


class SecureLinkError(Exception):
    """Base exception for SecureLink errors."""
    pass


class CredentialError(SecureLinkError):
    """Certificate or private key could not be loaded."""
    pass


class ConnectError(SecureLinkError):
    """Address resolution or TCP connect failed."""
    pass


class HandshakeError(SecureLinkError):
    """TLS negotiation failed (including untrusted certificates)."""
    pass


class ReadError(SecureLinkError):
    """Receiving from an established session failed."""
    pass


class WriteError(SecureLinkError):
    """Sending on an established session failed."""
    pass


class ClosedError(SecureLinkError):
    """Operation attempted on a stream or connection that is closed."""
    pass


class BindError(SecureLinkError):
    """Listening endpoint could not be bound."""
    pass


class ConnectionStateError(SecureLinkError):
    """Operation not allowed in the connection's current state."""
    pass
