"""
GET /ping

Liveness check. Never touches the engine, so it keeps answering even
when the engine is broken.
"""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ok


def pong(request: HTTPRequest) -> HTTPResponse:
    return ok({"pong": True})
