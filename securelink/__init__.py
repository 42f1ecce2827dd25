"""
SecureLink

Encrypted, duplex, message-oriented connections between one server and many
concurrent clients:
- TLS contexts built from system roots or a private CA
- Secure streams with race-free teardown
- Per-connection reader threads with concurrent sends
- A thread-per-connection echo server
"""

__version__ = "1.0.0"
