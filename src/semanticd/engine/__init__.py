"""
Semantic engines.

One engine is picked at startup and bound to the server; the HTTP layer
only ever talks to the SemanticEngine interface.

    engine = create_engine("python")
    server = serve(config, engine)
"""

from typing import Dict, Type

from .base import (
    SemanticEngine,
    EngineError,
    Buffer,
    Position,
    Context,
    Definition,
    Completion,
    Diagnostic,
    find_buffer,
    load_source,
)
from .python import PythonEngine


# Engines selectable by name (CLI --engine)
ENGINES: Dict[str, Type[SemanticEngine]] = {
    PythonEngine.name: PythonEngine,
}


def create_engine(name: str) -> SemanticEngine:
    """
    Instantiate a registered engine.

    Raises:
        ValueError: If no engine is registered under ``name``.
    """
    try:
        engine_class = ENGINES[name]
    except KeyError:
        raise ValueError(
            f"Unknown engine: {name}. Available: {', '.join(sorted(ENGINES))}"
        ) from None
    return engine_class()


__all__ = [
    "SemanticEngine",
    "EngineError",
    "Buffer",
    "Position",
    "Context",
    "Definition",
    "Completion",
    "Diagnostic",
    "find_buffer",
    "load_source",
    "PythonEngine",
    "ENGINES",
    "create_engine",
]
