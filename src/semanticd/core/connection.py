"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with the buffered reading an HTTP server
needs. TCP is a byte stream: a request can arrive split over many recv()
calls, or two pipelined requests can arrive in one. The connection keeps
a buffer, cuts exactly one request out of it per ``read_request`` call and
keeps whatever follows for the next call.

    recv() chunks:   "POST /parse HT" "TP/1.1\\r\\nContent-Le" "ngth: 27\\r\\n\\r\\n{..."
                                  │
                                  ▼
    _buffer:         "POST /parse HTTP/1.1\\r\\nContent-Length: 27\\r\\n\\r\\n{...}"
                                  │
                  head ends at \\r\\n\\r\\n, body is Content-Length bytes
                                  ▼
    read_request() → one complete request, leftovers stay in _buffer

=============================================================================
OVERSIZED BODIES
=============================================================================

Completion and parse requests carry whole source files, but nothing
legitimate comes close to ``max_body_length``. When the declared
Content-Length is over it the body is never read: the head is returned
alone, ``body_omitted`` is set, and the server answers 413 and closes
the connection (the unread body makes the stream unusable afterwards).

Bodies are framed by Content-Length only. A request carrying
Transfer-Encoding is refused with 411 Length Required and the connection
is closed.

=============================================================================
"""

import socket
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..http.request import HTTPParseError


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, for logging and cleanup."""
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier for log lines.
        state: Current lifecycle state.
        requests_handled: Requests read so far on this connection.
        body_omitted: The last request's body was over the limit and
                      was not read.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0
    body_omitted: bool = False

    buffer_size: int = 8192
    timeout: float = 30.0
    keep_alive_timeout: float = 5.0
    max_header_size: int = 64 * 1024
    max_body_length: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request from the socket.

        Returns:
            The request bytes (head only when ``body_omitted`` is set), or
            None if the client closed the connection or an idle keep-alive
            connection timed out.

        Raises:
            TimeoutError: The first request did not arrive in time.
            HTTPParseError: The request head is larger than
                            ``max_header_size`` (431), or the request
                            uses Transfer-Encoding (411).
        """
        self.state = ConnectionState.READING
        self.body_omitted = False

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None

                self._buffer += chunk

                if len(self._buffer) > self.max_header_size and \
                        self._buffer.find(b"\r\n\r\n") == -1:
                    raise HTTPParseError(
                        f"Request head too large: over {self.max_header_size} bytes",
                        status_code=431,
                    )

            header_end = self._buffer.find(b"\r\n\r\n")
            header_section = self._buffer[:header_end]
            body_start = header_end + 4

            if self._header_value(header_section, "transfer-encoding") is not None:
                self._buffer = b""
                raise HTTPParseError(
                    "Transfer-Encoding is not supported; send Content-Length",
                    status_code=411,
                )

            content_length = self._parse_content_length(header_section)

            if content_length > self.max_body_length:
                logger.debug(
                    f"[{self.id}] Declared body of {content_length} bytes over "
                    f"limit, not reading it"
                )
                self.body_omitted = True
                request_data = self._buffer[:body_start]
                self._buffer = b""
                self.requests_handled += 1
                return request_data

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # Closed mid-body; the parser reports it

                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]

            # Pipelined requests stay buffered for the next call
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            return request_data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            try:
                self.socket.settimeout(self.timeout)
            except OSError:
                pass

    def _recv(self) -> bytes:
        """recv() that reports an abrupt disconnect as end of stream."""
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        """
        Content-Length from the raw head, 0 if absent or unreadable.

        Needed before the request can be parsed; the parser validates the
        header properly afterwards.
        """
        value = self._header_value(headers, "content-length")
        try:
            return max(int(value), 0) if value is not None else 0
        except ValueError:
            return 0

    @staticmethod
    def _header_value(headers: bytes, name: str) -> Optional[str]:
        """First value of header ``name`` (lowercase) in the raw head, or None."""
        prefix = name + ":"
        for line in headers.decode("utf-8", errors="replace").split("\r\n")[1:]:
            if line.lower().startswith(prefix):
                return line.split(":", 1)[1].strip()
        return None

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send response bytes with sendall().

        Returns:
            True if sent, False if the client is gone.
        """
        self.state = ConnectionState.WRITING

        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close gracefully: send FIN, drain what the client still sends,
        release the descriptor.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(65536):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def set_keep_alive(self):
        """Response sent; waiting for the next request."""
        self.state = ConnectionState.KEEP_ALIVE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
