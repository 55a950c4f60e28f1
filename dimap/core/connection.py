import socket
import ssl
import logging
from typing import Optional

from dimap.core.errors import BrokenConnection, ConnectionClosed, Timeout

logger = logging.getLogger("dimap.core.connection")

IMAP4_PORT = 143
IMAP4_SSL_PORT = 993
CRLF = b"\r\n"
# un byte por carácter: los literales {n} se cuentan igual en bytes y en texto
WIRE_ENCODING = "latin-1"


class ControlConnectionManager:
    """
    Line oriented transport over a TCP socket.

    Owns the socket exclusively. `starttls()` swaps the socket for its TLS
    wrapper in place, so every later read/write goes through the new channel.
    """

    def __init__(self, host: str, port: int = None, timeout: float = 5.0, use_ssl: bool = False,
                 ssl_context: Optional[ssl.SSLContext] = None):
        self.host = host
        self.port = port or (IMAP4_SSL_PORT if use_ssl else IMAP4_PORT)
        self.timeout = timeout
        self.use_ssl = use_ssl
        self.ssl_context = ssl_context
        self.socket: Optional[socket.socket] = None
        self._buffer = bytearray()

    def connect(self):
        if self.socket is not None:
            raise RuntimeError("Connection already established.")
        try:
            logger.info(f"Connecting to {self.host}:{self.port} (timeout={self.timeout}s, ssl={self.use_ssl})")
            sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
            if self.use_ssl:
                context = self.ssl_context or ssl.create_default_context()
                sock = context.wrap_socket(sock, server_hostname=self.host)
            self.socket = sock
            self._buffer.clear()
            logger.info(f"✓ Connected to {self.host}:{self.port}")
        except (socket.timeout, ConnectionRefusedError, ssl.SSLError, OSError) as e:
            logger.error(f"✗ Failed to connect to {self.host}:{self.port} - {e}")
            self.socket = None
            raise BrokenConnection(f"Cannot connect to {self.host}:{self.port} - {e}") from e

    def disconnect(self):
        if self.socket:
            try:
                logger.info(f"Closing connection to {self.host}:{self.port}")
                self.socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self.socket.close()
            logger.info(f"✓ Disconnected from {self.host}:{self.port}")
        self.socket = None
        self._buffer.clear()

    def is_connected(self) -> bool:
        return self.socket is not None

    def _require_socket(self) -> socket.socket:
        if self.socket is None:
            raise RuntimeError("No connection established.")
        return self.socket

    def send(self, data: str) -> int:
        """Send raw text, return the number of bytes the socket accepted."""
        sock = self._require_socket()
        payload = data.encode(WIRE_ENCODING)
        try:
            sock.sendall(payload)
        except socket.timeout as e:
            raise Timeout(f"Connection to {self.host}:{self.port} timed out while sending") from e
        except OSError as e:
            logger.error(f"Send to {self.host}:{self.port} failed - {e}")
            raise BrokenConnection(f"Broken connection to {self.host}:{self.port} - {e}") from e
        return len(payload)

    def receive_line(self) -> str:
        """
        Read one CRLF terminated line (returned without the CRLF). May block.

        A timeout after some bytes arrived keeps waiting for the rest of the
        line; a timeout with no progress at all is a failure.
        """
        sock = self._require_socket()
        # bytes left over from the previous call count as progress
        progressed = bool(self._buffer)
        while True:
            idx = self._buffer.find(CRLF)
            if idx >= 0:
                line = bytes(self._buffer[:idx])
                del self._buffer[:idx + 2]
                return line.decode(WIRE_ENCODING)

            try:
                chunk = sock.recv(4096)
            except socket.timeout as e:
                if not progressed:
                    logger.error(f"Connection to {self.host}:{self.port} timed out")
                    raise Timeout(f"Connection to {self.host}:{self.port} timed out") from e
                # partial line, keep waiting
                progressed = False
                continue
            except OSError as e:
                raise BrokenConnection(f"Broken connection to {self.host}:{self.port} - {e}") from e

            if not chunk:
                raise ConnectionClosed(f"Connection to {self.host}:{self.port} closed unexpectedly")
            self._buffer.extend(chunk)
            progressed = True

    def starttls(self, ssl_context: Optional[ssl.SSLContext] = None):
        """Upgrade the live socket to TLS in place."""
        sock = self._require_socket()
        if self._buffer:
            raise BrokenConnection("Unread data pending before TLS negotiation")
        context = ssl_context or self.ssl_context or ssl.create_default_context()
        try:
            self.socket = context.wrap_socket(sock, server_hostname=self.host)
        except (ssl.SSLError, OSError) as e:
            logger.error(f"TLS negotiation with {self.host}:{self.port} failed - {e}")
            raise BrokenConnection(f"TLS negotiation with {self.host}:{self.port} failed - {e}") from e
        logger.info(f"✓ TLS established with {self.host}:{self.port}")

    def __repr__(self):
        return f"ControlConnectionManager(host={self.host!r}, port={self.port}, connected={self.is_connected()})"
