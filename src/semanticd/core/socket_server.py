"""
=============================================================================
SOCKET SERVER
=============================================================================

The listening TCP socket and the accept loop. Everything HTTP happens
elsewhere; this layer only turns incoming connections into Connection
objects and hands them to a callback.

    bind()                          caller's thread, raises on failure
      ├── socket(AF_INET, SOCK_STREAM)
      ├── SO_REUSEADDR, TCP_NODELAY
      ├── bind((host, port))
      └── listen(backlog)

    serve_forever(handler)          accept thread
      └── while running:
              accept() ──► Connection ──► handler(conn)

    shutdown()                      any thread
      ├── running = False
      └── shutdown(SHUT_RDWR)       wakes a blocked accept()

    close()                         after the accept thread has exited

Binding is split from accepting so that "port already in use" surfaces
in the caller's thread, before any thread is started.

=============================================================================
"""

import socket
import logging
from typing import Callable, Optional, Tuple

from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Listening socket plus accept loop.

    Args:
        host: Address to bind.
        port: Port to bind; 0 for an OS-chosen port.
        backlog: listen() backlog.
        buffer_size, timeout, keep_alive_timeout, max_body_length:
            Passed to every Connection.
    """

    def __init__(
        self,
        host: str,
        port: int,
        backlog: int = 128,
        buffer_size: int = 8192,
        timeout: Optional[float] = 30.0,
        keep_alive_timeout: float = 5.0,
        max_body_length: int = 10 * 1024 * 1024,
    ):
        self.host = host
        self.port = port
        self.backlog = backlog
        self.buffer_size = buffer_size
        self.timeout = timeout
        self.keep_alive_timeout = keep_alive_timeout
        self.max_body_length = max_body_length

        self._socket: Optional[socket.socket] = None
        self._running = False

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restarting on the same port must not wait out TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Small JSON responses; send them now
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up at least once a second to check the running flag
        sock.settimeout(1.0)

        return sock

    def bind(self) -> Tuple[str, int]:
        """
        Create the socket, bind and listen.

        Returns:
            The bound (ip, port).

        Raises:
            OSError: If the address cannot be bound or listened on. The
                     socket is closed before the error propagates.
        """
        sock = self._create_socket()

        try:
            sock.bind((self.host, self.port))
            sock.listen(self.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.host}:{self.port}: {e}")
            sock.close()
            raise

        self._socket = sock
        address = sock.getsockname()[:2]
        self._running = True

        logger.debug(f"Listening on {address[0]}:{address[1]}")
        return address

    def serve_forever(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until ``shutdown()``. Blocks; run it in a thread.

        Args:
            connection_handler: Called with every accepted Connection.
        """
        if self._socket is None:
            raise RuntimeError("bind() must succeed before serve_forever()")

        try:
            self._accept_loop(connection_handler)
        finally:
            self._running = False

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                # shutdown() wakes accept() with an error; anything else is real
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            if not self._running:
                client_socket.close()
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.buffer_size,
                timeout=self.timeout,
                keep_alive_timeout=self.keep_alive_timeout,
                max_body_length=self.max_body_length,
            )

            try:
                connection_handler(conn)
            except Exception as e:
                logger.exception(f"Connection handler failed: {e}")
                conn.close()

    def shutdown(self):
        """
        Stop accepting. Safe to call from any thread, and more than once.

        The listening socket stays open until ``close()``, but no longer
        accepts: new connection attempts are refused.
        """
        self._running = False
        if self._socket is not None:
            try:
                self._socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # Not connected / already shut down

    def close(self):
        """
        Release the listening socket.

        Raises:
            OSError: If the descriptor cannot be closed.
        """
        sock, self._socket = self._socket, None
        if sock is not None:
            sock.close()
            logger.debug("Listening socket closed")
