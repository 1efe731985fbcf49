"""
POST /find_definition

    200 {"file_path": ..., "text": ..., "line": ..., "column": ...}
    204 nothing is defined for the symbol under the cursor
    400 malformed body
    422 the engine could not work with the query
"""

import logging

from .payload import decode_object, context_from
from ..engine.base import EngineError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ok, no_content, unprocessable
from ..middleware.engine import EngineStore


logger = logging.getLogger(__name__)


def find(request: HTTPRequest) -> HTTPResponse:
    engine = EngineStore.get(request)
    ctx = context_from(decode_object(request))

    try:
        definition = engine.find_definition(ctx)
    except EngineError as e:
        logger.debug(f"find_definition failed for {ctx.file_path}: {e}")
        return unprocessable(str(e))

    if definition is None:
        return no_content()

    return ok(definition.to_dict())
