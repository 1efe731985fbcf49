"""
=============================================================================
URL ROUTER
=============================================================================

Dispatches a request to exactly one handler by exact (method, path) match.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ROUTING TABLE                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   POST /parse_file        → file.parse                              │
    │   POST /find_definition   → definition.find                         │
    │   POST /list_completions  → completion.list_completions             │
    │   GET  /ping              → ping.pong                               │
    │                                                                     │
    │   anything else           → 404 Not Found (no handler runs)         │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

There are no path parameters, wildcards or prefix mounts: the API is a
fixed set of RPC-style endpoints. Lookups are a single dict access keyed
by ``(METHOD, path)``, so a trailing slash or a different method is simply
a miss.

A wrong method on a known path is also answered with 404, not 405; the
table is the whole contract and clients only ever see "route exists" or
"route does not exist".

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, Any, List
import logging

from .request import HTTPRequest
from .response import HTTPResponse, not_found


logger = logging.getLogger(__name__)


# A handler takes the request and returns a response
Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass
class Route:
    """
    A registered route.

        @router.post("/find_definition")
        def find(request): ...

        Route(path="/find_definition", method="POST", handler=find)
    """

    path: str
    method: str
    handler: Handler
    meta: Dict[str, Any] = field(default_factory=dict)


class Router:
    """
    Exact-match HTTP router.

        router = Router()

        @router.get("/ping")
        def pong(request):
            return ok({"pong": True})

        router.add_route("/find_definition", find, method="POST")

        response = router.handle(request)
    """

    def __init__(self):
        self._routes: Dict[tuple[str, str], Route] = {}

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: str = "GET",
        **meta: Any
    ) -> Route:
        """
        Register a handler for ``method path``.

        Raises:
            ValueError: If the pair is already registered. Silently
                        replacing a handler hides wiring mistakes.
        """
        key = (method.upper(), path)
        if key in self._routes:
            raise ValueError(f"Route already registered: {key[0]} {path}")

        route = Route(path=path, method=key[0], handler=handler, meta=meta)
        self._routes[key] = route
        return route

    def match(self, method: str, path: str) -> Optional[Route]:
        """The route for exactly this method and path, or None."""
        return self._routes.get((method.upper(), path))

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Route a request.

        This is the innermost stage of the middleware pipeline, so every
        before-middleware (logging, engine attach, body limit) has already
        run, including for requests that end up here as a 404.
        """
        route = self.match(request.method, request.path)
        if route is None:
            return not_found(f"No route matches {request.method} {request.path}")
        return route.handler(request)

    # =========================================================================
    # DECORATOR-STYLE REGISTRATION
    # =========================================================================

    def route(
        self,
        path: str,
        method: str = "GET",
        **meta: Any
    ) -> Callable[[Handler], Handler]:
        """Decorator form of add_route; returns the handler unchanged."""
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method, **meta)
            return handler

        return decorator

    def get(self, path: str, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "GET", **meta)

    def post(self, path: str, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "POST", **meta)

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def routes(self) -> List[Route]:
        """All routes in registration order."""
        return list(self._routes.values())

    def log_routes(self) -> None:
        """
        Log the routing table at DEBUG level.

            POST     /parse_file
            POST     /find_definition
            POST     /list_completions
            GET      /ping
        """
        for route in self.routes():
            logger.debug(f"  {route.method:8} {route.path}")
