"""
Development PKI

Issues a self-signed root CA and server certificates signed by it, so a
server can be run (and tested) without a public certificate. Clients trust
the result by passing the CA file as their CA bundle.
"""

import ipaddress
import os
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional
from cryptography import x509
from cryptography.x509.oid import NameOID, ExtendedKeyUsageOID
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa


DEFAULT_SERVER_NAMES = ("localhost", "127.0.0.1")


def _generate_key():
    return rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )


def _name(common_name: str, organization: str) -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])


def _subject_alt_names(names: Iterable[str]) -> x509.SubjectAlternativeName:
    entries = []
    for name in names:
        try:
            entries.append(x509.IPAddress(ipaddress.ip_address(name)))
        except ValueError:
            entries.append(x509.DNSName(name))
    return x509.SubjectAlternativeName(entries)


def generate_root_ca(
    common_name: str = "SecureLink Dev Root CA",
    organization: str = "SecureLink",
    validity_days: int = 3650,
):
    """
    Generate a self-signed root CA certificate.

    Args:
        common_name: Common Name (CN) for the CA
        organization: Organization name
        validity_days: Certificate validity period in days

    Returns:
        Tuple of (private_key, certificate)
    """
    private_key = _generate_key()
    subject = issuer = _name(common_name, organization)
    now = datetime.now(timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(
            x509.BasicConstraints(ca=True, path_length=None),
            critical=True,
        )
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                key_encipherment=False,
                content_commitment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(private_key.public_key()),
            critical=False,
        )
        .sign(private_key, hashes.SHA256())
    )

    return private_key, cert


def issue_certificate(
    common_name: str,
    ca_cert: x509.Certificate,
    ca_key,
    organization: str = "SecureLink",
    validity_days: int = 365,
    alt_names: Optional[Iterable[str]] = None,
):
    """
    Issue a server certificate signed by the CA.

    Args:
        common_name: Common Name (CN), also added to the SAN list
        ca_cert: CA certificate object
        ca_key: CA private key object
        organization: Organization name
        validity_days: Certificate validity period in days
        alt_names: Extra DNS names or IP addresses for the SAN extension
            (default: localhost and 127.0.0.1)

    Returns:
        Tuple of (private_key, certificate)
    """
    private_key = _generate_key()
    names = [common_name]
    for name in (alt_names if alt_names is not None else DEFAULT_SERVER_NAMES):
        if name not in names:
            names.append(name)
    now = datetime.now(timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(_name(common_name, organization))
        .issuer_name(ca_cert.subject)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(
            x509.BasicConstraints(ca=False, path_length=None),
            critical=True,
        )
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                key_encipherment=True,
                content_commitment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
            critical=False,
        )
        .add_extension(_subject_alt_names(names), critical=False)
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(private_key.public_key()),
            critical=False,
        )
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )

    return private_key, cert


def save_certificate_and_key(private_key, cert, cert_path: str, key_path: str):
    """Write the certificate and unencrypted private key as PEM files."""
    for path in (cert_path, key_path):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    with open(key_path, "wb") as f:
        f.write(
            private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.TraditionalOpenSSL,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )

    with open(cert_path, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))
