"""
Request payload decoding shared by the engine-backed handlers.

Everything here raises HTTPParseError (400) on bad input; the pipeline's
fault barrier turns that into the error response.

    {
        "file_path": "pkg/mod.py",
        "buffers": [{"file_path": "pkg/mod.py", "contents": "..."}],
        "line": 12,
        "column": 4
    }
"""

from typing import Any, Dict, List

from ..engine.base import Buffer, Context, Position
from ..http.request import HTTPRequest, HTTPParseError


def decode_object(request: HTTPRequest) -> Dict[str, Any]:
    """The JSON body, which must be an object."""
    data = request.json
    if not isinstance(data, dict):
        raise HTTPParseError("Request body must be a JSON object")
    return data


def require_str(payload: Dict[str, Any], name: str) -> str:
    if name not in payload:
        raise HTTPParseError(f"Missing field: {name}")
    value = payload[name]
    if not isinstance(value, str):
        raise HTTPParseError(f"Field {name} must be a string")
    return value


def require_int(payload: Dict[str, Any], name: str, minimum: int = 0) -> int:
    if name not in payload:
        raise HTTPParseError(f"Missing field: {name}")
    value = payload[name]
    # bool is an int subclass; true/false are not positions
    if isinstance(value, bool) or not isinstance(value, int):
        raise HTTPParseError(f"Field {name} must be an integer")
    if value < minimum:
        raise HTTPParseError(f"Field {name} must be >= {minimum}")
    return value


def buffers_from(payload: Dict[str, Any]) -> List[Buffer]:
    """The optional ``buffers`` list; absent or null means none."""
    raw = payload.get("buffers")
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise HTTPParseError("Field buffers must be a list")

    buffers = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise HTTPParseError(f"buffers[{index}] must be an object")
        try:
            buffers.append(Buffer(
                file_path=require_str(item, "file_path"),
                contents=require_str(item, "contents"),
            ))
        except HTTPParseError as e:
            raise HTTPParseError(f"buffers[{index}]: {e}") from None
    return buffers


def context_from(payload: Dict[str, Any]) -> Context:
    """Build the engine query for find_definition / list_completions."""
    return Context(
        file_path=require_str(payload, "file_path"),
        position=Position(
            line=require_int(payload, "line", minimum=1),
            column=require_int(payload, "column", minimum=0),
        ),
        buffers=buffers_from(payload),
    )
