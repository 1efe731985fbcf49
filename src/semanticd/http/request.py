"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into HTTPRequest objects (RFC 7230).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   POST /find_definition HTTP/1.1\r\n        ◄── request line        │
    │   Host: localhost:3000\r\n                  ◄── headers             │
    │   Content-Type: application/json\r\n                                │
    │   Content-Length: 87\r\n                                            │
    │   \r\n                                      ◄── separator           │
    │   {"file_path": "a.py", "line": 4, ...}     ◄── body                │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

The HTTPRequest built here doubles as the per-request context of the
semantic server: besides the decoded method, path and body it carries a
reference to the shared engine, filled in by the engine-attach middleware.

=============================================================================
OVERSIZED BODIES
=============================================================================

The connection layer never buffers a body larger than the server's cap.
When it skips one, it hands over the head only and the parser is told so
(``body_omitted=True``): the request keeps its declared Content-Length and
an empty body, and the body-limit middleware answers 413 without the
handler ever running.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from urllib.parse import parse_qs, urlparse, unquote
import re
import json


class HTTPParseError(Exception):
    """
    Raised when a request (or its JSON payload) cannot be understood.

    Carries the HTTP status to answer with:

        400 Bad Request          - malformed syntax, invalid JSON, bad fields
        405 Method Not Allowed   - unknown method token
        431 Header Fields Too Large - head exceeds the header cap
        505 HTTP Version Not Supported
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request, and the context one request is handled in.

    Attributes:
        method:         GET, POST, ...
        path:           Request path without the query string
        headers:        Lower-cased header name → value
        query_params:   Query parameter → list of values
        body:           Raw body bytes (empty when the body was skipped)
        client_address: (ip, port) of the peer, for the access log
        engine:         The shared semantic engine; None until the
                        engine-attach middleware has run
        request_id:     Correlation id set by the logging middleware
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    client_address: tuple[str, int] = ("", 0)

    engine: Optional[Any] = field(default=None, repr=False)
    request_id: Optional[str] = None

    _body_json: Optional[Any] = field(default=None, repr=False)
    _content_type: Optional[str] = field(default=None, repr=False)

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters (``; charset=utf-8`` stripped)."""
        if self._content_type is None:
            ct = self.headers.get("content-type", "")
            self._content_type = ct.split(";")[0].strip().lower()
        return self._content_type or None

    @property
    def content_length(self) -> int:
        """
        Declared Content-Length, 0 when missing or unparsable.

        This is what the client *announced*; for a skipped body it is
        larger than ``len(body)``.
        """
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_json(self) -> bool:
        return self.content_type == "application/json"

    @property
    def json(self) -> Any:
        """
        The body decoded as JSON, parsed once and cached.

        Returns None for an empty body. The Content-Type header is not
        enforced; editor plugins commonly omit it.

        Raises:
            HTTPParseError: (400) if the body is not valid UTF-8 JSON.
        """
        if self._body_json is None and self.body:
            try:
                self._body_json = json.loads(self.body.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise HTTPParseError(f"Invalid JSON body: {e}")
        return self._body_json

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 keeps the connection open unless ``Connection: close``;
        HTTP/1.0 closes it unless ``Connection: keep-alive``.
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name)
        if values:
            return values[0]
        return default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

        Raw bytes
            │
            ├── 1. Head size check          → 431
            ├── 2. Split at \\r\\n\\r\\n       → 400 if missing
            ├── 3. Request line              → 400 / 405 / 505
            ├── 4. Headers (lower-cased)
            ├── 5. Body by Content-Length    → 400 if short
            ▼
        HTTPRequest

    Body size is NOT judged here; that is the body-limit middleware's job,
    so the rejection goes through the middleware chain like any other
    response.
    """

    VALID_METHODS = {
        "GET", "POST", "PUT", "DELETE", "PATCH",
        "HEAD", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_header_size: int = 64 * 1024):
        """
        Args:
            max_header_size: Largest accepted request head (request line
                             plus headers) in bytes.
        """
        self.max_header_size = max_header_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0),
        body_omitted: bool = False,
    ) -> HTTPRequest:
        """
        Parse raw request bytes.

        Args:
            data: Request bytes as read by the connection.
            client_address: Peer (ip, port), kept for logging.
            body_omitted: The connection skipped an oversized body; accept
                          a body shorter than the declared Content-Length.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        if header_end > self.max_header_size:
            raise HTTPParseError(
                f"Request head too large: {header_end} bytes",
                status_code=431,
            )

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        if "transfer-encoding" in headers:
            raise HTTPParseError(
                "Transfer-Encoding is not supported; send Content-Length",
                status_code=411,
            )

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")

        if body_omitted:
            body = b""
        elif len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )
        else:
            # Anything past Content-Length belongs to the next request
            body = body[:content_length]

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body,
            client_address=client_address,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, list[str]], str]:
        """Split ``METHOD SP URI SP VERSION`` into its parts."""
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        return method, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse ``Name: value`` lines.

        Names are lower-cased, obsolete line folding is joined onto the
        previous header, repeated headers are comma-joined and malformed
        lines are skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
) -> HTTPRequest:
    """Parse with a default RequestParser. Handy in tests."""
    return RequestParser().parse(data, client_address)
