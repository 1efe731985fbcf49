"""
=============================================================================
MIDDLEWARE PACKAGE
=============================================================================

Cross-cutting request processing for the semantic server:

    - LoggingMiddleware     access log; the pipeline bracket
    - EngineMiddleware      attaches the shared engine to the request
    - BodyLimitMiddleware   413 for bodies over 10 MiB

Composition (done by ``semanticd.server.serve``):

    pipeline = MiddlewarePipeline(bracket=LoggingMiddleware())  # optional
    pipeline.add(EngineMiddleware(store))
    pipeline.add(BodyLimitMiddleware())
    handler = pipeline.wrap(router.handle)

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware, RequestLog
from .engine import EngineStore, EngineMiddleware
from .body_limit import BodyLimitMiddleware, MAX_BODY_LENGTH


__all__ = [
    # Base
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",

    # Implementations
    "LoggingMiddleware",
    "RequestLog",
    "EngineStore",
    "EngineMiddleware",
    "BodyLimitMiddleware",
    "MAX_BODY_LENGTH",
]
