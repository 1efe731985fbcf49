"""
=============================================================================
SEMANTIC SERVER
=============================================================================

Ties the pieces together and owns the server lifecycle.

    serve(config, engine)
        │
        ├── config.validate()                   ValueError on bad config
        ├── EngineStore().attach(engine)
        ├── engine.initialize(config)
        ├── pipeline + router → handler
        └── Server.start()
                ├── bind + listen                BindError on failure
                ├── thread pool start
                └── accept thread start          returns immediately
        │
        ▼
    Server handle:  addr()  close()  wait()  is_running

=============================================================================
REQUEST FLOW
=============================================================================

    accept thread                  worker thread
    ─────────────                  ─────────────
    accept() ──► Connection ──►    read_request()
                 pool.submit()        │
                                      ▼
                                   RequestParser.parse()  ── HTTPParseError → 4xx, close
                                      │
                                      ▼
                                   pipeline(request)
                                     logging → barrier → engine → body limit
                                     → router → handler
                                      │
                                      ▼
                                   send_response()
                                      │
                                      └── keep-alive? read the next request

=============================================================================
ERRORS
=============================================================================

Only lifecycle errors reach the embedding program: ServerError from
close(), BindError from serve(). Everything that goes wrong inside a
request becomes that request's error response; the server carries on.

=============================================================================
"""

import logging
import threading
from typing import Optional

from .config import Config
from .core.connection import Connection, ConnectionState
from .core.socket_server import SocketServer
from .core.thread_pool import ThreadPool
from .engine.base import SemanticEngine
from .handlers import completion, definition, file, ping
from .http.request import RequestParser, HTTPParseError
from .http.response import HTTPResponse, error_response, internal_error
from .http.router import Router
from .http.status_codes import HTTPStatus, to_status
from .middleware.base import MiddlewarePipeline, NextHandler
from .middleware.body_limit import BodyLimitMiddleware, MAX_BODY_LENGTH
from .middleware.engine import EngineStore, EngineMiddleware
from .middleware.logging import LoggingMiddleware


logger = logging.getLogger(__name__)


class ServerError(Exception):
    """The server could not start or stop cleanly."""


class BindError(ServerError):
    """The listening socket could not be bound (e.g. port in use)."""


def build_router() -> Router:
    """The fixed route table."""
    router = Router()
    router.add_route("/parse_file", file.parse, method="POST")
    router.add_route("/find_definition", definition.find, method="POST")
    router.add_route("/list_completions", completion.list_completions, method="POST")
    router.add_route("/ping", ping.pong, method="GET")
    return router


def build_pipeline(config: Config, store: EngineStore) -> MiddlewarePipeline:
    """
    Middleware in execution order:

        [access log]  →  engine attach  →  body limit
    """
    bracket = None
    if config.print_http_logs:
        bracket = LoggingMiddleware(log_format=config.log_format)

    pipeline = MiddlewarePipeline(bracket=bracket)
    pipeline.add(EngineMiddleware(store))
    pipeline.add(BodyLimitMiddleware(MAX_BODY_LENGTH))
    return pipeline


class Server:
    """
    A running semantic server. Created by ``serve``.

    The accept loop and the request workers run on background threads;
    the thread that called ``serve`` is free. Use ``wait()`` to block
    until the server is closed.
    """

    def __init__(self, config: Config, handler: NextHandler):
        self.config = config
        self._handler = handler
        self._parser = RequestParser()

        self._socket_server = SocketServer(
            host=config.host,
            port=config.port,
            backlog=config.backlog,
            buffer_size=config.buffer_size,
            timeout=config.timeout,
            keep_alive_timeout=config.keep_alive_timeout,
            max_body_length=MAX_BODY_LENGTH,
        )
        self._thread_pool = ThreadPool(
            min_workers=config.min_workers,
            max_workers=config.max_workers,
        )

        self._accept_thread: Optional[threading.Thread] = None
        self._address: Optional[str] = None
        self._running = False
        self._closed = False
        self._close_lock = threading.Lock()
        self._stopped = threading.Event()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> "Server":
        """
        Bind, then start the workers and the accept thread.

        Returns as soon as the socket is listening.

        Raises:
            BindError: If the address cannot be bound.
            ServerError: If the server was already started or closed.
        """
        if self._running or self._closed:
            raise ServerError("Server already started")

        try:
            host, port = self._socket_server.bind()
        except OSError as e:
            raise BindError(
                f"Cannot listen on {self.config.host}:{self.config.port}: {e}"
            ) from e

        self._address = f"{host}:{port}"
        self._thread_pool.start()
        self._running = True

        self._accept_thread = threading.Thread(
            target=self._socket_server.serve_forever,
            args=(self._handle_connection,),
            name="semanticd-accept",
            daemon=True,
        )
        self._accept_thread.start()

        logger.info(f"Semantic server listening on {self._address}")
        return self

    def addr(self) -> str:
        """
        The bound address as ``"<ip>:<port>"``.

        The real port is reported even when port 0 was configured.
        """
        if self._address is None:
            raise ServerError("Server is not started")
        return self._address

    def close(self) -> None:
        """
        Stop accepting connections and release the listening socket.

        When this returns, new connection attempts fail. Requests already
        being handled are not interrupted; their connections close after
        the current response. Calling close() again does nothing.

        Raises:
            ServerError: If the listening socket cannot be released.
        """
        with self._close_lock:
            if self._closed:
                logger.debug("close() on a closed server ignored")
                return
            self._closed = True

        logger.info("Shutting down semantic server...")
        self._running = False

        self._socket_server.shutdown()
        if self._accept_thread is not None:
            self._accept_thread.join(timeout=5.0)
            if self._accept_thread.is_alive():
                logger.warning("Accept thread did not stop in time")

        try:
            self._socket_server.close()
        except OSError as e:
            raise ServerError(f"Cannot release listening socket: {e}") from e
        finally:
            self._thread_pool.shutdown()
            self._stopped.set()

        logger.info("Semantic server stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until ``close()`` has run.

        Returns:
            True once closed, False if ``timeout`` expired first.
        """
        return self._stopped.wait(timeout)

    def __enter__(self) -> "Server":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Accept-thread callback: hand the connection to a worker."""
        try:
            submitted = self._thread_pool.submit(
                self._process_connection,
                args=(conn,),
                block=False,
            )
        except RuntimeError:
            # Pool is shutting down
            conn.close()
            return

        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    def _process_connection(self, conn: Connection):
        """
        Worker-thread keep-alive loop for one connection.

        Read → parse → pipeline → send, until the client goes away, asks
        to close, sends something unparseable, or the server is closed.
        """
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(
                            raw_request,
                            conn.address,
                            body_omitted=conn.body_omitted,
                        )
                    except HTTPParseError as e:
                        self._send_error(conn, to_status(e.status_code), str(e))
                        break

                    conn.state = ConnectionState.PROCESSING
                    response = self._dispatch(conn, request)

                    keep_alive = (
                        self.config.keep_alive
                        and request.is_keep_alive
                        and not conn.body_omitted
                        and response.headers.get("Connection") != "close"
                    )

                    if keep_alive:
                        response.headers.setdefault("Connection", "keep-alive")
                        response.headers.setdefault(
                            "Keep-Alive",
                            f"timeout={int(self.config.keep_alive_timeout)}"
                        )
                    else:
                        response.headers["Connection"] = "close"

                    if not conn.send_response(response.to_bytes(self.config.server_name)):
                        break

                    if not keep_alive:
                        break

                    conn.set_keep_alive()

                except HTTPParseError as e:
                    # Raised by the connection for an oversized head
                    self._send_error(conn, to_status(e.status_code), str(e))
                    break

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break

                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection error: {e}")
                    break

    def _dispatch(self, conn: Connection, request) -> HTTPResponse:
        try:
            return self._handler(request)
        except Exception as e:
            # The pipeline has its own barrier; this guards the bracket itself
            logger.exception(f"[{conn.id}] Handler error: {e}")
            return internal_error()

    def _send_error(self, conn: Connection, status: HTTPStatus, message: str):
        """Error response for failures before the pipeline; always closes."""
        response = error_response(status, message)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))


def serve(config: Config, engine: SemanticEngine) -> Server:
    """
    Start a semantic server and return its handle without blocking.

        server = serve(Config(port=3000), PythonEngine())
        print(server.addr())      # 0.0.0.0:3000
        ...
        server.close()

    Args:
        config: Server configuration; read, never modified.
        engine: The engine every request is answered with. Shared by all
                worker threads for the server's lifetime.

    Raises:
        ValueError: If the configuration is invalid.
        BindError: If the listening socket cannot be bound.
    """
    config.validate()

    store = EngineStore()
    store.attach(engine)
    engine.initialize(config)

    router = build_router()
    router.log_routes()

    pipeline = build_pipeline(config, store)
    logger.debug(f"Middleware: {' -> '.join(m.name for m in pipeline)}")
    handler = pipeline.wrap(router.handle)

    server = Server(config, handler)
    server.start()
    return server
