"""
=============================================================================
REQUEST HANDLERS
=============================================================================

One module per endpoint. Handlers are plain functions taking the request
and returning a response:

    ┌───────────────────────┬──────────────────────────────┬──────────────┐
    │ Route                 │ Handler                      │ Engine call  │
    ├───────────────────────┼──────────────────────────────┼──────────────┤
    │ POST /parse_file      │ file.parse                   │ parse_file   │
    │ POST /find_definition │ definition.find              │ find_def...  │
    │ POST /list_completions│ completion.list_completions  │ list_comp... │
    │ GET  /ping            │ ping.pong                    │ none         │
    └───────────────────────┴──────────────────────────────┴──────────────┘

Status conventions shared by the engine-backed handlers:

    200  result in the body
    204  the engine found nothing
    400  malformed JSON, wrong body shape, missing or mistyped field
    422  EngineError (unreadable file, position outside the file)

=============================================================================
"""

from . import completion, definition, file, ping
from .payload import decode_object, context_from, buffers_from


__all__ = [
    "completion",
    "definition",
    "file",
    "ping",
    "decode_object",
    "context_from",
    "buffers_from",
]
