"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All tunables of the semantic server in one immutable object. The caller
builds it (in code, from the environment, or via the CLI) and hands it
to ``serve``; the server only ever reads it.

    config = Config(port=3000, print_http_logs=True)
    server = serve(config, PythonEngine())

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Config:
    """
    Configuration for the semantic server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    CORE
    - port, print_http_logs

    NETWORK SETTINGS
    - host, backlog, buffer_size, timeout

    HTTP SETTINGS
    - keep_alive, keep_alive_timeout, server_name

    THREADING SETTINGS
    - min_workers, max_workers

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # CORE
    # ─────────────────────────────────────────────────────────────────────

    port: int = 3000
    """
    TCP port to listen on. 0 lets the OS pick a free one; ask the server
    for it with ``Server.addr()``.
    """

    print_http_logs: bool = False
    """
    Install the access-log middleware (one line before and one after
    every request on the ``semanticd.access`` logger).
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    Address to bind. All interfaces by default; "127.0.0.1" keeps the
    server local to the machine.
    """

    backlog: int = 128
    """Connections the OS queues before refusing new ones."""

    buffer_size: int = 8192
    """Bytes per recv() call."""

    timeout: Optional[float] = 30.0
    """
    Socket read timeout in seconds for a connection's first request.
    There is no limit on how long the engine may take to answer.
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Serve several requests per TCP connection."""

    keep_alive_timeout: float = 5.0
    """Idle seconds before a kept-alive connection is closed."""

    server_name: str = "semanticd/0.1"
    """Value of the Server response header."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads started with the server."""

    max_workers: int = 32
    """
    Upper bound on worker threads, and so on clients served at once.
    Editors keep one connection open per buffer, so this wants to be
    comfortably above the number of open editors.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    log_format: str = "text"
    """Access log format: 'text' (Apache style) or 'json'."""

    @classmethod
    def from_env(cls) -> "Config":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        SEMANTICD_HOST          Bind address (default: 0.0.0.0)
        SEMANTICD_PORT          Port (default: 3000)
        SEMANTICD_HTTP_LOGS     Access logging, 1/true/yes/on (default: off)
        SEMANTICD_WORKERS       Max worker threads (default: 32)
        SEMANTICD_TIMEOUT       Read timeout in seconds (default: 30)
        SEMANTICD_LOG_LEVEL     Logging level (default: INFO)
        SEMANTICD_LOG_FORMAT    text or json (default: text)

        =====================================================================
        USAGE
        =====================================================================

        SEMANTICD_PORT=4000 SEMANTICD_HTTP_LOGS=1 semanticd serve

        =====================================================================

        Raises:
            ValueError: If a numeric variable does not parse.
        """
        return cls(
            host=os.getenv("SEMANTICD_HOST", "0.0.0.0"),
            port=int(os.getenv("SEMANTICD_PORT", "3000")),
            print_http_logs=_env_bool("SEMANTICD_HTTP_LOGS", False),
            max_workers=int(os.getenv("SEMANTICD_WORKERS", "32")),
            timeout=float(os.getenv("SEMANTICD_TIMEOUT", "30")),
            log_level=os.getenv("SEMANTICD_LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("SEMANTICD_LOG_FORMAT", "text").lower(),
        )

    def validate(self) -> None:
        """
        Fail fast on bad values, before anything is bound.

        Raises:
            ValueError: Describing the first bad field.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Unknown log format: {self.log_format}")
