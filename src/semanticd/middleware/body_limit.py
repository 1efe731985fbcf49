"""
Request body size limit.

Requests whose body is larger than the cap are answered with
413 Payload Too Large and never reach the router. Both the declared
Content-Length and the bytes actually received are checked: the
connection layer stops buffering oversized bodies, so for those only the
declared length is left to judge by.
"""

import logging

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, payload_too_large


logger = logging.getLogger(__name__)


# 10 MiB
MAX_BODY_LENGTH = 10 * 1024 * 1024


class BodyLimitMiddleware(Middleware):
    """Short-circuits requests with bodies over ``max_length`` bytes."""

    def __init__(self, max_length: int = MAX_BODY_LENGTH):
        if max_length < 0:
            raise ValueError("max_length must be >= 0")
        self.max_length = max_length

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        size = max(request.content_length, len(request.body))
        if size > self.max_length:
            logger.warning(
                f"Rejecting {request.method} {request.path}: body of {size} bytes "
                f"exceeds {self.max_length}"
            )
            return payload_too_large(self.max_length)
        return next(request)
