"""
POST /parse_file

    {"file_path": "pkg/mod.py", "buffers": [...]}

    200 {"file_path": "pkg/mod.py", "diagnostics": [...]}

A file that parses cleanly still gets 200, with an empty list.
"""

import logging

from .payload import decode_object, require_str, buffers_from
from ..engine.base import EngineError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ok, unprocessable
from ..middleware.engine import EngineStore


logger = logging.getLogger(__name__)


def parse(request: HTTPRequest) -> HTTPResponse:
    engine = EngineStore.get(request)
    payload = decode_object(request)
    file_path = require_str(payload, "file_path")
    buffers = buffers_from(payload)

    try:
        diagnostics = engine.parse_file(file_path, buffers)
    except EngineError as e:
        logger.debug(f"parse_file failed for {file_path}: {e}")
        return unprocessable(str(e))

    return ok({
        "file_path": file_path,
        "diagnostics": [d.to_dict() for d in diagnostics],
    })
