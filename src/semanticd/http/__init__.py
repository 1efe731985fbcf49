"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Translates between raw bytes and structured messages:

    bytes ──► RequestParser ──► HTTPRequest ──► Router ──► handler
                                                              │
    bytes ◄── HTTPResponse.to_bytes() ◄── HTTPResponse ◄──────┘

Nothing in this package knows about semantic engines; the request only
carries an opaque ``engine`` slot that the middleware layer fills.

=============================================================================
"""

from .status_codes import HTTPStatus, to_status

from .request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    parse_request,
)

from .response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    ok,
    no_content,
    error_response,
    bad_request,
    not_found,
    payload_too_large,
    unprocessable,
    internal_error,
)

from .router import Router, Route, Handler


__all__ = [
    # Status
    "HTTPStatus",
    "to_status",

    # Request
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Response
    "HTTPResponse",
    "ResponseBuilder",
    "format_http_date",
    "ok",
    "no_content",
    "error_response",
    "bad_request",
    "not_found",
    "payload_too_large",
    "unprocessable",
    "internal_error",

    # Routing
    "Router",
    "Route",
    "Handler",
]
