#!/usr/bin/env python3
"""
SecureLink Client

Terminal chat client: lines typed on stdin are sent to the server, replies
are printed as they arrive on a background reader thread.
"""

import argparse
import logging
import sys
from typing import Callable, Optional

from securelink.common.config import ClientConfig
from securelink.common.exceptions import (
    SecureLinkError, CredentialError, ClosedError, WriteError
)
from securelink.common.protocol import Framing, LINE_DELIMITER
from securelink.crypto import TLSContext, new_client_context
from securelink.net import Connection

logger = logging.getLogger(__name__)

TextCallback = Callable[[str], None]


def _ignore(text: str):
    pass


class ChatClient:
    """
    Text-level wrapper around one client Connection.

    on_message is called on the connection's reader thread, and so is on_error
    for failures of an established connection. Errors the shell detects
    itself are reported synchronously on the calling thread before connect()
    or send_message() returns False: a failed connect, and a send while not
    connected ("Not connected to server"). on_sent is called on the sender's
    thread after a successful send. A GUI has to marshal all of them onto
    its own thread.
    """

    def __init__(
        self,
        context: TLSContext,
        host: str,
        port: int,
        on_message: TextCallback = _ignore,
        on_error: TextCallback = _ignore,
        on_sent: TextCallback = _ignore,
        connect_timeout: Optional[float] = None,
    ):
        self.context = context
        self.host = host
        self.port = port
        self.on_message = on_message
        self.on_error = on_error
        self.on_sent = on_sent
        self.connect_timeout = connect_timeout
        self.connection: Optional[Connection] = None

    @property
    def connected(self) -> bool:
        return self.connection is not None and self.connection.running

    def _handle_message(self, connection: Connection, data: bytes):
        self.on_message(data.decode("utf-8", errors="replace"))

    def _handle_error(self, connection: Connection, description: str):
        self.on_error(description)

    def connect(self) -> bool:
        """
        Connect and start receiving. Returns True on success.

        Failures are reported through on_error; there is no automatic retry.
        """
        if self.connected:
            return True

        self.connection = Connection(
            on_message=self._handle_message,
            on_error=self._handle_error,
            framing=Framing.LINE,
        )
        try:
            self.connection.connect(self.context, self.host, self.port,
                                    timeout=self.connect_timeout)
        except SecureLinkError as e:
            logger.debug("Connect to %s:%s failed: %s", self.host, self.port, e)
            return False
        return True

    def reconnect(self, host: str, port: int) -> bool:
        """Drop the current connection (if any) and connect to host:port."""
        self.stop()
        self.host = host
        self.port = port
        return self.connect()

    def send_message(self, text: str) -> bool:
        """Send one line of text; a newline is appended."""
        if not self.connected:
            self.on_error("Not connected to server")
            return False

        try:
            self.connection.send_message(text.encode("utf-8") + LINE_DELIMITER)
        except ClosedError:
            # Lost a race with stop()
            self.on_error("Not connected to server")
            return False
        except WriteError as e:
            # Already reported through on_error by the connection
            logger.debug("Send failed: %s", e)
            return False

        self.on_sent(text)
        return True

    def stop(self):
        if self.connection is not None:
            self.connection.stop()

    def chat_loop(self, stdin=None):
        """Read lines until EOF or 'exit'; empty lines are skipped."""
        stdin = stdin or sys.stdin
        for line in stdin:
            message = line.rstrip("\r\n")
            if message.lower() == "exit":
                break
            if not message.strip():
                continue
            if not self.send_message(message) and not self.connected:
                break


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="SecureLink TLS chat client")
    parser.add_argument("host", nargs="?", help="Server host (default: 127.0.0.1)")
    parser.add_argument("port", nargs="?", type=int, help="Server port (default: 12345)")
    parser.add_argument("--cafile", dest="ca_path", help="CA bundle to trust instead of the system roots")
    parser.add_argument("--log-level", help="Logging level (default: WARNING)")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    config = ClientConfig.from_env(**vars(args))

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        context = new_client_context(cafile=config.ca_path)
    except CredentialError as e:
        print(f"[!] {e}")
        sys.exit(1)

    client = ChatClient(
        context,
        config.host,
        config.port,
        on_message=lambda text: print(f"Server: {text.rstrip()}"),
        on_error=lambda error: print(f"[!] Error: {error}"),
        connect_timeout=config.connect_timeout,
    )

    print(f"[*] Connecting to {config.host}:{config.port}...")
    if not client.connect():
        sys.exit(1)
    print("[✓] Connected securely to server! Type 'exit' to quit.\n")

    try:
        client.chat_loop()
    except KeyboardInterrupt:
        pass
    finally:
        client.stop()
        print("[*] Disconnected from server")


if __name__ == "__main__":
    main()
