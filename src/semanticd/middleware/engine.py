"""
=============================================================================
ENGINE STORE AND ENGINE-ATTACH MIDDLEWARE
=============================================================================

Makes the one engine instance of a server available to every handler
without re-creating or copying it per request.

    serve(config, engine)
        │
        ├── store = EngineStore()
        ├── store.attach(engine)               once, before listening
        └── EngineMiddleware(store)            in the pipeline
                │
                ▼   every request
            request.engine = store.engine       same object, every time
                │
                ▼
            handler: engine = EngineStore.get(request)

The store is an explicit object handed to the middleware's constructor,
not a module global: two servers in one process each get their own.

Writes happen once (``attach``) before any reader exists; after that the
reference never changes, so readers need no lock. The engine itself is
shared by all worker threads and is responsible for its own
synchronisation.

=============================================================================
"""

import logging
import threading
from typing import Optional

from .base import Middleware, NextHandler
from ..engine.base import SemanticEngine
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


class EngineStore:
    """
    Write-once slot holding a server's engine.

    Misuse (attaching twice, reading before attach) is a programming
    error and raises RuntimeError rather than producing an HTTP error.
    """

    def __init__(self):
        self._engine: Optional[SemanticEngine] = None
        self._lock = threading.Lock()

    def attach(self, engine: SemanticEngine) -> None:
        """
        Install the engine.

        Raises:
            RuntimeError: If an engine is already attached.
        """
        with self._lock:
            if self._engine is not None:
                raise RuntimeError("An engine is already attached to this store")
            self._engine = engine
        logger.debug(f"Attached engine {type(engine).__name__}")

    @property
    def is_attached(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> SemanticEngine:
        """
        The attached engine.

        Raises:
            RuntimeError: If nothing has been attached yet.
        """
        engine = self._engine
        if engine is None:
            raise RuntimeError("No engine attached; call attach() before serving")
        return engine

    @staticmethod
    def get(request: HTTPRequest) -> SemanticEngine:
        """
        The engine attached to ``request`` by EngineMiddleware.

        Raises:
            RuntimeError: If the request did not pass through EngineMiddleware.
        """
        engine = request.engine
        if engine is None:
            raise RuntimeError("Request has no engine; is EngineMiddleware installed?")
        return engine


class EngineMiddleware(Middleware):
    """
    Before-stage exposing the store's engine on the request.

    Does not touch the engine, only hands out the reference.
    """

    def __init__(self, store: EngineStore):
        self._store = store

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request.engine = self._store.engine
        return next(request)
