#!/usr/bin/env python3
"""
Issue a Server Certificate Signed by the Root CA

Usage:
    python scripts/gen_cert.py --cn localhost --cert server.crt --key server.key
    python scripts/gen_cert.py --cn chat.example.org --san 10.0.0.5
"""

import argparse

from securelink.crypto.certs import issue_certificate, save_certificate_and_key, DEFAULT_SERVER_NAMES
from securelink.crypto.pki import load_certificate, load_private_key, get_certificate_info


def main():
    parser = argparse.ArgumentParser(
        description="Issue a server certificate signed by the root CA"
    )
    parser.add_argument(
        "--cn",
        default="localhost",
        help="Common Name (CN) for the certificate"
    )
    parser.add_argument(
        "--san",
        action="append",
        default=None,
        help="Extra DNS name or IP address (repeatable; default: localhost, 127.0.0.1)"
    )
    parser.add_argument(
        "--days",
        type=int,
        default=365,
        help="Validity period in days (default: 365)"
    )
    parser.add_argument("--cert", default="server.crt", help="Output certificate path")
    parser.add_argument("--key", default="server.key", help="Output private key path")
    parser.add_argument("--ca-cert", default="certs/ca.crt", help="Path to CA certificate")
    parser.add_argument("--ca-key", default="certs/ca.key", help="Path to CA private key")

    args = parser.parse_args()

    print("[*] Loading CA certificate and key...")
    ca_cert = load_certificate(args.ca_cert)
    ca_key = load_private_key(args.ca_key)

    print(f"[*] Issuing certificate for '{args.cn}'...")
    private_key, cert = issue_certificate(
        common_name=args.cn,
        ca_cert=ca_cert,
        ca_key=ca_key,
        validity_days=args.days,
        alt_names=args.san or DEFAULT_SERVER_NAMES,
    )
    save_certificate_and_key(private_key, cert, args.cert, args.key)

    info = get_certificate_info(cert)
    print(f"[+] Certificate saved to: {args.cert}")
    print(f"[+] Private key saved to: {args.key}")
    print(f"    Issued by: {info['issuer']}")
    print(f"    Valid until: {info['not_valid_after']}")
    print("\n[✓] Certificate issued and saved successfully!")


if __name__ == "__main__":
    main()
