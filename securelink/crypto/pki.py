"""
X.509 Certificate and Key Loading (PKI)

Parses the PEM material handed to the TLS context so that a bad file is
reported by name before OpenSSL ever sees it:
- Certificate chain and private key loading
- Key/certificate pairing check
- Validity period checking
- Fingerprint and Common Name extraction for logs
"""

from datetime import datetime, timezone
from typing import List
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from securelink.common.exceptions import CredentialError
from securelink.common.utils import sha256_hex


def _read_file(path: str, what: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise CredentialError(f"Cannot read {what} '{path}': {e}") from e


def load_certificate_chain(cert_path: str) -> List[x509.Certificate]:
    """
    Load one or more X.509 certificates from a PEM file.

    The first certificate is the leaf; any following ones are intermediates.

    Args:
        cert_path: Path to certificate file

    Returns:
        Non-empty list of certificates

    Raises:
        CredentialError: If the file is missing, unreadable or not PEM
    """
    data = _read_file(cert_path, "certificate")
    try:
        chain = x509.load_pem_x509_certificates(data)
    except ValueError as e:
        raise CredentialError(f"Malformed certificate '{cert_path}': {e}") from e
    if not chain:
        raise CredentialError(f"No certificate found in '{cert_path}'")
    return chain


def load_certificate(cert_path: str) -> x509.Certificate:
    """Load the leaf certificate from a PEM file."""
    return load_certificate_chain(cert_path)[0]


def load_private_key(key_path: str):
    """
    Load an unencrypted private key from a PEM file.

    Args:
        key_path: Path to private key file

    Returns:
        Private key object

    Raises:
        CredentialError: If the file is missing, unreadable, encrypted or not PEM
    """
    data = _read_file(key_path, "private key")
    try:
        return serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError) as e:
        raise CredentialError(f"Malformed private key '{key_path}': {e}") from e
    except UnsupportedAlgorithm as e:
        raise CredentialError(f"Unsupported private key '{key_path}': {e}") from e


def key_matches_certificate(private_key, cert: x509.Certificate) -> bool:
    """Check that the private key is the counterpart of the certificate's public key."""
    fmt = (serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)
    return private_key.public_key().public_bytes(*fmt) == cert.public_key().public_bytes(*fmt)


def check_validity(cert: x509.Certificate, now: datetime = None) -> tuple[bool, str]:
    """
    Check the certificate's validity period.

    Returns:
        Tuple of (is_valid, message); message is "OK" when valid
    """
    now = now or datetime.now(timezone.utc)

    if now < cert.not_valid_before_utc:
        return False, f"Certificate not yet valid (valid from {cert.not_valid_before_utc})"

    if now > cert.not_valid_after_utc:
        return False, f"Certificate expired (expired on {cert.not_valid_after_utc})"

    return True, "OK"


def get_certificate_fingerprint(cert: x509.Certificate) -> str:
    """Hex-encoded SHA-256 fingerprint of the DER certificate."""
    return sha256_hex(cert.public_bytes(serialization.Encoding.DER))


def get_common_name(cert: x509.Certificate) -> str:
    """Common Name (CN) value, or "UNKNOWN" if absent."""
    try:
        return cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
    except IndexError:
        return "UNKNOWN"


def get_certificate_info(cert: x509.Certificate) -> dict:
    """
    Extract certificate information for display.

    Args:
        cert: Certificate object

    Returns:
        Dictionary with certificate details
    """
    return {
        "subject": cert.subject.rfc4514_string(),
        "issuer": cert.issuer.rfc4514_string(),
        "common_name": get_common_name(cert),
        "serial_number": cert.serial_number,
        "not_valid_before": cert.not_valid_before_utc,
        "not_valid_after": cert.not_valid_after_utc,
        "fingerprint": get_certificate_fingerprint(cert),
    }
