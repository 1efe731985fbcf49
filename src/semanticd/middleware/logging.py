"""
=============================================================================
REQUEST LOGGING MIDDLEWARE
=============================================================================

Access logging for the semantic server, installed when
``Config.print_http_logs`` is set. It is the pipeline's bracket: its
before line is the first thing that happens to a request and its after
line the last, so the logged status, size and latency are the ones the
client actually gets.

    [a1b2c3d4] -> POST /find_definition
    127.0.0.1 - - [19/Oct/2026:12:00:00 +0000] "POST /find_definition" 200 71 3.12ms [a1b2c3d4]

=============================================================================
REQUEST IDS
=============================================================================

Every request gets a short random id. It prefixes both log lines, is
stored on the request (``request.request_id``) for handlers that log, and
is echoed back in the ``X-Request-ID`` response header so a client can
quote it when reporting a bad answer.

=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Optional
from dataclasses import dataclass

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


# Namespaced so deployments can route access logs separately:
#   logging.getLogger("semanticd.access").addHandler(file_handler)
logger = logging.getLogger("semanticd.access")


@dataclass
class RequestLog:
    """Structured access log entry for one request."""

    request_id: str
    method: str
    path: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        """JSON form, for log aggregators."""
        return {
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
            "status_code": self.status_code,
            "content_length": self.content_length,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        """Apache common-log style line."""
        return (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms [{self.request_id}]'
        )


class LoggingMiddleware(Middleware):
    """
    Logs a line before and a line after every request.

    Args:
        log_format: "text" (Apache style) or "json".
        include_request_id: Add the X-Request-ID response header.
        log_level: Level for access lines. Errors (>= 500) are always
                   logged at WARNING or above.
        skip_paths: Paths not logged at all (e.g. ["/ping"] for noisy
                    liveness probes).
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown log format: {log_format}")
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = str(uuid.uuid4())[:8]
        request.request_id = request_id
        skip = request.path in self.skip_paths

        if not skip:
            logger.log(self.log_level, f"[{request_id}] -> {request.method} {request.path}")

        start_time = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            # Only reachable without a fault barrier inside the bracket
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"[{request_id}] Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        if self.include_request_id:
            response.headers["X-Request-ID"] = request_id

        if skip:
            return response

        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=len(response.body),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        level = self.log_level
        if log_entry.status_code >= 500:
            level = max(level, logging.WARNING)

        if self.log_format == "json":
            logger.log(level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(level, log_entry.to_text())

        return response
