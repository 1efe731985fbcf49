"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP/1.1 responses (RFC 7230) for the JSON API.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP RESPONSE STRUCTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   HTTP/1.1 200 OK\r\n                        ◄── status line        │
    │   Content-Type: application/json; charset=utf-8\r\n                 │
    │   Content-Length: 71\r\n                     ◄── always computed    │
    │   Date: Mon, 19 Oct 2026 12:00:00 GMT\r\n                           │
    │   Server: semanticd/0.1\r\n                                         │
    │   \r\n                                                              │
    │   {"file_path": "a.py", "text": "def foo():", "line": 1, ...}       │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Every error the server produces has the same body shape:

    {"error": "<human readable message>"}

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union
import json

from .status_codes import HTTPStatus


DEFAULT_SERVER_NAME = "semanticd/0.1"


@dataclass
class HTTPResponse:
    """
    An HTTP response waiting to be written to the socket.

    Use ResponseBuilder or the helper functions below rather than filling
    the fields by hand.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """``HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE``"""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def json(self) -> Any:
        """Decoded JSON body (None when empty). Mostly for tests."""
        if not self.body:
            return None
        return json.loads(self.body.decode("utf-8"))

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header; returns self for chaining."""
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Serialize for ``socket.sendall()``.

        Content-Length, Date and Server are added unless already set.
        Headers are copied so the response object itself is untouched.
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .json({"file_path": "a.py", "line": 3})
            .build())
    """

    def __init__(self, server_name: str = DEFAULT_SERVER_NAME):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body = b""
        self._server_name = server_name

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        self._headers["Content-Type"] = content_type
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Raw body; strings are UTF-8 encoded."""
        if isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self.content_type(content_type)
        return self.body(text)

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """
        JSON body.

        Compact separators unless ``pretty``.
        """
        if pretty:
            payload = json.dumps(data, indent=2, ensure_ascii=False)
        else:
            payload = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        self.content_type("application/json; charset=utf-8")
        return self.body(payload)

    def no_cache(self) -> "ResponseBuilder":
        self._headers["Cache-Control"] = "no-store"
        return self

    def close_connection(self) -> "ResponseBuilder":
        """Tell the client the connection closes after this response."""
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )

    def to_bytes(self) -> bytes:
        return self.build().to_bytes(self._server_name)


def format_http_date(dt: datetime) -> str:
    """
    Format a UTC datetime as an RFC 7231 HTTP-date.

    Example: ``Mon, 19 Oct 2026 12:00:00 GMT``. Locale independent, unlike
    ``strftime("%a")``.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
#     return ok({"pong": True})
#     return no_content()
#     return bad_request("missing field: line")
#
# =============================================================================

def ok(body: Union[str, bytes, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """200 OK; dict/list bodies are sent as JSON."""
    builder = ResponseBuilder().status(HTTPStatus.OK)

    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body, content_type or "text/plain; charset=utf-8")
    else:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)

    return builder.build()


def no_content() -> HTTPResponse:
    """204 No Content. The engine had nothing to report."""
    return ResponseBuilder().status(HTTPStatus.NO_CONTENT).build()


def error_response(status: HTTPStatus, message: Optional[str] = None) -> HTTPResponse:
    """Any error status with the standard ``{"error": ...}`` body."""
    return (ResponseBuilder()
        .status(status)
        .json({"error": message or status.phrase})
        .build())


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    """400. Malformed JSON, missing or mistyped fields."""
    return error_response(HTTPStatus.BAD_REQUEST, message)


def not_found(message: str = "Not Found") -> HTTPResponse:
    """404. No route for the method and path."""
    return error_response(HTTPStatus.NOT_FOUND, message)


def payload_too_large(limit: int) -> HTTPResponse:
    """413. Body over the size cap; the connection will be closed."""
    return (ResponseBuilder()
        .status(HTTPStatus.PAYLOAD_TOO_LARGE)
        .json({"error": f"Request body exceeds {limit} bytes"})
        .close_connection()
        .build())


def unprocessable(message: str) -> HTTPResponse:
    """422. Well-formed query the engine could not work with."""
    return error_response(HTTPStatus.UNPROCESSABLE_ENTITY, message)


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    """500. Keep the message generic; details go to the log."""
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)
