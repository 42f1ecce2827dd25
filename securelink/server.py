#!/usr/bin/env python3
"""
SecureLink Server

Loads the server certificate and key, then echoes every message back to
its sender over TLS:
1. Credential loading (exits on a bad certificate or key)
2. Accept loop with a synchronous TLS handshake per client
3. One reader thread per client running the echo consumer
"""

import argparse
import logging
import sys

from securelink.common.config import ServerConfig
from securelink.common.exceptions import CredentialError, BindError
from securelink.crypto import new_server_context
from securelink.crypto.pki import load_certificate, get_certificate_info
from securelink.net import EchoServer


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="SecureLink TLS echo server")
    parser.add_argument("--port", type=int, help="Listening port (default: 12345)")
    parser.add_argument("--host", help="Interface to bind (default: 0.0.0.0)")
    parser.add_argument("--cert", dest="cert_path", help="PEM certificate chain (default: server.crt)")
    parser.add_argument("--key", dest="key_path", help="PEM private key (default: server.key)")
    parser.add_argument("--framing", choices=["raw", "line"], help="Message framing (default: line)")
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
    return parser.parse_args(argv)


def print_certificate_banner(cert_path: str):
    """Print the common name, issuer, expiry and fingerprint of the server certificate."""
    info = get_certificate_info(load_certificate(cert_path))
    print(f"[*] Server CN: {info['common_name']}")
    print(f"    Issuer: {info['issuer']}")
    print(f"    Valid until: {info['not_valid_after']:%Y-%m-%d %H:%M} UTC")
    print(f"    Fingerprint: {info['fingerprint'][:32]}...")


def main(argv=None):
    args = parse_args(argv)
    config = ServerConfig.from_env(**vars(args))

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    print("=" * 70)
    print("  SECURELINK SERVER")
    print("=" * 70 + "\n")

    try:
        context = new_server_context(config.cert_path, config.key_path)
    except CredentialError as e:
        print(f"[!] Cannot load server credentials: {e}")
        sys.exit(1)

    print_certificate_banner(config.cert_path)

    server = EchoServer(
        context,
        host=config.host,
        port=config.port,
        framing=config.framing,
        handshake_timeout=config.handshake_timeout,
        backlog=config.backlog,
    )

    print(f"[✓] Secure server running on {config.host}:{config.port}")
    print("[*] Waiting for clients...\n")

    try:
        server.serve_forever()
    except BindError as e:
        print(f"[!] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n[*] Server shutting down...")
        server.shutdown()


if __name__ == "__main__":
    main()
