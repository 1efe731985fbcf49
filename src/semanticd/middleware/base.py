"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Defines the middleware protocol and the pipeline that composes middleware
around the router. Chain of Responsibility: each stage may work on the
request, call the next stage (or short-circuit), then work on the
response on the way back out.

=============================================================================
THE SEMANTIC SERVER CHAIN
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  LoggingMiddleware (bracket, optional)                              │
    │  ┌───────────────────────────────────────────────────────────────┐  │
    │  │  fault barrier: exceptions → 4xx/500 responses                │  │
    │  │  ┌─────────────────────────────────────────────────────────┐  │  │
    │  │  │  EngineMiddleware        request.engine = store.engine  │  │  │
    │  │  │  ┌───────────────────────────────────────────────────┐  │  │  │
    │  │  │  │  BodyLimitMiddleware   > 10 MiB → 413, stop       │  │  │  │
    │  │  │  │  ┌─────────────────────────────────────────────┐  │  │  │  │
    │  │  │  │  │  router.handle → handler                    │  │  │  │  │
    │  │  │  │  └─────────────────────────────────────────────┘  │  │  │  │
    │  │  │  └───────────────────────────────────────────────────┘  │  │  │
    │  │  └─────────────────────────────────────────────────────────┘  │  │
    │  └───────────────────────────────────────────────────────────────┘  │
    └─────────────────────────────────────────────────────────────────────┘

    before: logging → engine attach → body limit → router
    after:  ...                                   → logging (last)

=============================================================================
THE BRACKET
=============================================================================

Access logging has to see the request before anything else touches it and
the response after everything else is done with it, or its timing and
status are wrong. Rather than relying on whoever builds the pipeline to
add it first, the bracket is a constructor argument:

    pipeline = MiddlewarePipeline(bracket=LoggingMiddleware())
    pipeline.add(EngineMiddleware(store))
    pipeline.add(BodyLimitMiddleware())

However many stages are added afterwards, the bracket stays outermost.
Directly inside it sits a fault barrier, so an exception anywhere further
in still reaches the bracket as an ordinary response (and is logged with
its real status) instead of unwinding past it.

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from ..http.request import HTTPRequest, HTTPParseError
from ..http.response import HTTPResponse, error_response, internal_error
from ..http.status_codes import to_status


logger = logging.getLogger(__name__)


# The next middleware, or the final handler. Call it to continue the chain.
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class MyMiddleware(Middleware):
            def __call__(self, request, next):
                # before: inspect / annotate the request,
                #         or return a response to short-circuit
                response = next(request)
                # after: inspect / annotate the response
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming request.
            next: The rest of the chain. Not calling it short-circuits.

        Returns:
            The response from ``next`` or a short-circuit response.
        """

    @property
    def name(self) -> str:
        """Middleware name for logging."""
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Ordered middleware wrapped around a final handler.

    Stages run in the order added (first added = outermost after the
    bracket). ``wrap`` builds the composed callable once; it is then
    shared by every worker thread, so stages must not keep per-request
    state on themselves.
    """

    def __init__(self, bracket: Optional[Middleware] = None):
        """
        Args:
            bracket: Middleware that must run first before the handler and
                     last after it (access logging). None for no bracket.
        """
        self._bracket = bracket
        self._middleware: List[Middleware] = []

    @property
    def bracket(self) -> Optional[Middleware]:
        return self._bracket

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append a stage inside the bracket. Returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Compose bracket → fault barrier → stages → handler.

        Given stages [A, B] the result is bracket(barrier(A(B(handler)))).
        Wrapping happens in reverse so the first-added stage is outermost.
        """
        current = handler

        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)

        current = self._fault_barrier(current)

        if self._bracket is not None:
            current = self._create_wrapped_handler(self._bracket, current)

        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)

        return wrapped

    def _fault_barrier(self, next_handler: NextHandler) -> NextHandler:
        """
        Turn exceptions into responses for this one request.

        HTTPParseError carries its own client-error status (malformed JSON,
        bad fields); anything else is a fault and becomes a 500 with the
        traceback in the log.
        """
        def guarded(request: HTTPRequest) -> HTTPResponse:
            try:
                return next_handler(request)
            except HTTPParseError as e:
                logger.debug(f"Rejected {request.method} {request.path}: {e}")
                return error_response(to_status(e.status_code), str(e))
            except Exception as e:
                logger.exception(
                    f"Unhandled error in {request.method} {request.path}: {e}"
                )
                return internal_error()

        return guarded

    def __iter__(self):
        """Stages in execution order, bracket first."""
        if self._bracket is not None:
            yield self._bracket
        yield from self._middleware
