"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The subset of RFC 7231 status codes the semantic server emits, each with
its reason phrase.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  2xx   │ 200 OK             - engine answered                      │
    │        │ 204 No Content     - engine found nothing at the position │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 400 Bad Request    - malformed JSON / missing fields      │
    │        │ 404 Not Found      - no route for method + path           │
    │        │ 408 Request Timeout- client too slow sending the request  │
    │        │ 413 Payload Too Large - body over the 10 MiB cap          │
    │        │ 422 Unprocessable  - engine rejected the query            │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500 Internal Error - handler fault                        │
    │        │ 503 Unavailable    - worker queue full                    │
    │        │ 505 Version        - not HTTP/1.0 or HTTP/1.1             │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.OK.phrase
        'OK'
    """

    # 2xx SUCCESS
    OK = 200
    NO_CONTENT = 204

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    LENGTH_REQUIRED = 411
    PAYLOAD_TOO_LARGE = 413
    UNPROCESSABLE_ENTITY = 422
    REQUEST_HEADER_FIELDS_TOO_LARGE = 431

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase used in the status line (``HTTP/1.1 200 OK``)."""
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self < 600

    @property
    def is_error(self) -> bool:
        """4xx or 5xx. Used by the access log to pick a level."""
        return self >= 400


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.LENGTH_REQUIRED: "Length Required",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.UNPROCESSABLE_ENTITY: "Unprocessable Entity",
    HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE: "Request Header Fields Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}


def to_status(code: int) -> HTTPStatus:
    """
    Map an integer code onto HTTPStatus.

    Codes outside the table collapse to 400/500 by class so callers
    carrying a bare int (e.g. HTTPParseError) always get a usable status.
    """
    try:
        return HTTPStatus(code)
    except ValueError:
        if 400 <= code < 500:
            return HTTPStatus.BAD_REQUEST
        return HTTPStatus.INTERNAL_SERVER_ERROR
