"""
=============================================================================
SEMANTIC ENGINE CONTRACT
=============================================================================

The capability interface the HTTP layer delegates to, plus the value types
that cross it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   handler ──► Context(file_path, position, buffers)                 │
    │                  │                                                  │
    │                  ▼                                                  │
    │            SemanticEngine                                           │
    │              ├── find_definition(ctx)  → Definition | None          │
    │              ├── list_completions(ctx) → [Completion] | None        │
    │              └── parse_file(path, buffers) → [Diagnostic]           │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONVENTIONS
=============================================================================

- Positions: ``line`` is 1-indexed, ``column`` is 0-indexed (character
  offset into the line), both in requests and in results.
- "Nothing here" is ``None``, never an exception. The HTTP layer answers it
  with 204 No Content.
- Failures the client caused (unreadable file, position outside the file)
  raise EngineError; the HTTP layer answers them with 422.
- One engine instance serves every request of a server concurrently. An
  engine with mutable internal state (caches, child processes) must
  synchronise it itself.

=============================================================================
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


class EngineError(Exception):
    """
    Domain error reported by an engine.

    Examples: the queried file does not exist and no buffer supplies it,
    the position lies outside the file.
    """


@dataclass(frozen=True)
class Buffer:
    """
    In-memory contents for one file, overriding what is on disk.

    Lets editors query unsaved edits.
    """

    file_path: str
    contents: str


@dataclass(frozen=True)
class Position:
    """A cursor position: 1-indexed line, 0-indexed column."""

    line: int
    column: int


@dataclass
class Context:
    """
    Everything an engine needs for one query.

    Attributes:
        file_path: The file the cursor is in.
        position:  Cursor position in that file.
        buffers:   Unsaved file contents keyed by their path.
    """

    file_path: str
    position: Position
    buffers: List[Buffer] = field(default_factory=list)

    def buffer_for(self, path: str) -> Optional[Buffer]:
        """The buffer registered for ``path``, if any."""
        return find_buffer(self.buffers, path)

    def source_for(self, path: Optional[str] = None) -> str:
        """
        Source text of ``path`` (default: the queried file).

        Buffer contents win over the file on disk.

        Raises:
            EngineError: If no buffer supplies the file and it cannot be read.
        """
        return load_source(path or self.file_path, self.buffers)


def find_buffer(buffers: List[Buffer], path: str) -> Optional[Buffer]:
    """
    Look up a buffer by path.

    Exact match first, then a match after normalising both sides, so
    ``./pkg/a.py`` finds a buffer registered as ``pkg/a.py``.
    """
    for buffer in buffers:
        if buffer.file_path == path:
            return buffer

    wanted = Path(path)
    for buffer in buffers:
        if Path(buffer.file_path) == wanted:
            return buffer

    return None


def load_source(path: str, buffers: List[Buffer]) -> str:
    """Buffer contents for ``path`` or the file read from disk."""
    buffer = find_buffer(buffers, path)
    if buffer is not None:
        return buffer.contents

    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise EngineError(f"Cannot read {path}: {e}") from e


@dataclass
class Definition:
    """
    Where a symbol is defined.

    ``text`` is the source line of the definition with surrounding
    whitespace stripped, e.g. ``def foo(a, b):``.
    """

    file_path: str
    text: str
    line: int
    column: int
    kind: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        """Response payload of POST /find_definition."""
        return {
            "file_path": self.file_path,
            "text": self.text,
            "line": self.line,
            "column": self.column,
        }


@dataclass
class Completion:
    """
    One completion candidate.

    Attributes:
        text:      The identifier to insert.
        context:   Something to show next to it: the defining line for
                   symbols from the source, the kind for builtins.
        kind:      function, class, variable, module, parameter,
                   keyword or builtin.
        file_path, line, column:
                   Where the candidate is defined; None when it has no
                   source location (keywords, builtins).
    """

    text: str
    context: str
    kind: str
    file_path: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "context": self.context,
            "kind": self.kind,
            "file_path": self.file_path,
            "line": self.line,
            "column": self.column,
        }


@dataclass
class Diagnostic:
    """A parse problem: ``severity`` is ``error`` or ``warning``."""

    file_path: str
    line: int
    column: int
    message: str
    severity: str = "error"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_path": self.file_path,
            "line": self.line,
            "column": self.column,
            "message": self.message,
            "severity": self.severity,
        }


class SemanticEngine(ABC):
    """
    Abstract base class for semantic engines.

    Implementations are chosen once at startup and bound to a server with
    ``serve(config, engine)``. Every method may be called from many worker
    threads at once.
    """

    #: Short name used by the CLI ``--engine`` option and in logs
    name: str = "engine"

    def initialize(self, config: Any) -> None:
        """
        Called once by ``serve`` before the server accepts connections.

        The default does nothing; engines that need warm-up (indexes,
        child processes) override it.
        """

    @abstractmethod
    def find_definition(self, ctx: Context) -> Optional[Definition]:
        """Definition of the symbol under the cursor, or None."""

    @abstractmethod
    def list_completions(self, ctx: Context) -> Optional[List[Completion]]:
        """Completions for the identifier before the cursor, or None."""

    @abstractmethod
    def parse_file(self, file_path: str, buffers: List[Buffer]) -> List[Diagnostic]:
        """Diagnostics for ``file_path``; an empty list when it is clean."""
