"""
Line-oriented TCP transport, optionally wrapped in TLS.
"""

import logging
import socket
import ssl
from typing import Optional

logger = logging.getLogger(__name__)

ENCODING = "utf-8"


class TransportError(Exception):
    """Raised when the connection cannot be opened, read or written."""


class SocketTransport:
    """Newline-delimited text over a TCP socket.

    `write_line` appends CRLF. `read_line` returns one decoded line without
    its terminator, or None at end of stream.
    """

    def __init__(self, sock: socket.socket):
        self._sock = sock
        self._reader = sock.makefile("rb")

    @classmethod
    def open(
        cls,
        host: str,
        port: int,
        use_tls: bool = True,
        connect_timeout: Optional[float] = 30.0
    ) -> "SocketTransport":
        """Connect to `host:port` and return a ready transport.

        Raises:
            TransportError: If the connection or TLS handshake fails
        """
        try:
            sock = socket.create_connection((host, port), timeout=connect_timeout)
            if use_tls:
                context = ssl.create_default_context()
                sock = context.wrap_socket(sock, server_hostname=host)
            # Reads block for the lifetime of the session.
            sock.settimeout(None)
        except (OSError, ssl.SSLError) as e:
            raise TransportError(f"Cannot connect to {host}:{port}: {e}") from e
        logger.info("Connected to %s:%s (tls=%s)", host, port, use_tls)
        return cls(sock)

    def write_line(self, line: str) -> None:
        try:
            self._sock.sendall((line + "\r\n").encode(ENCODING))
        except OSError as e:
            raise TransportError(f"Write failed: {e}") from e

    def read_line(self) -> Optional[str]:
        try:
            data = self._reader.readline()
        except (OSError, ValueError) as e:
            raise TransportError(f"Read failed: {e}") from e
        if not data:
            return None
        return data.decode(ENCODING, errors="replace").rstrip("\r\n")

    def close(self) -> None:
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug("Socket shutdown skipped: %s", e)
        self._reader.close()
        self._sock.close()
