"""
=============================================================================
SEMANTICD - HTTP Facade for Source Code Semantic Engines
=============================================================================

Serves definition lookup, code completion and file parsing as a small
JSON-over-HTTP API, so editors can query a language engine without
linking against it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   editor ──HTTP/JSON──► semanticd ──► SemanticEngine                │
    │                                        (PythonEngine, ...)          │
    │                                                                     │
    │   POST /find_definition    where is the symbol under the cursor?    │
    │   POST /list_completions   what can be typed here?                  │
    │   POST /parse_file         what is wrong with this file?            │
    │   GET  /ping               is the server up?                        │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
QUICK START
=============================================================================

    from semanticd import Config, serve, PythonEngine

    server = serve(Config(port=3000), PythonEngine())
    print(server.addr())
    ...
    server.close()

Or from the shell:

    semanticd serve --port 3000 -l

=============================================================================
"""

__version__ = "0.1.0"

from .config import Config
from .engine import SemanticEngine, EngineError, PythonEngine, create_engine
from .server import Server, ServerError, BindError, serve

__all__ = [
    "Config",
    "SemanticEngine",
    "EngineError",
    "PythonEngine",
    "create_engine",
    "Server",
    "ServerError",
    "BindError",
    "serve",
    "__version__",
]
