#!/usr/bin/env python3
"""
Generate Root Certificate Authority (CA)

Creates a self-signed development CA. Clients trust servers signed by it
with --cafile certs/ca.crt.

Usage:
    python scripts/gen_ca.py --name "SecureLink Dev Root CA" --days 3650
"""

import argparse

from securelink.crypto.certs import generate_root_ca, save_certificate_and_key
from securelink.crypto.pki import get_certificate_info


def main():
    parser = argparse.ArgumentParser(
        description="Generate a self-signed root CA"
    )
    parser.add_argument(
        "--name",
        default="SecureLink Dev Root CA",
        help="Common Name (CN) for the CA"
    )
    parser.add_argument(
        "--days",
        type=int,
        default=3650,
        help="Validity period in days (default: 3650)"
    )
    parser.add_argument(
        "--cert",
        default="certs/ca.crt",
        help="Output path for the CA certificate"
    )
    parser.add_argument(
        "--key",
        default="certs/ca.key",
        help="Output path for the CA private key"
    )

    args = parser.parse_args()

    print(f"[*] Generating root CA '{args.name}'...")
    private_key, cert = generate_root_ca(args.name, validity_days=args.days)
    save_certificate_and_key(private_key, cert, args.cert, args.key)

    info = get_certificate_info(cert)
    print(f"[+] Certificate saved to: {args.cert}")
    print(f"[+] Private key saved to: {args.key}")
    print(f"    Valid until: {info['not_valid_after']}")
    print(f"    Fingerprint: {info['fingerprint']}")
    print("\n[✓] Root CA generated successfully!")


if __name__ == "__main__":
    main()
