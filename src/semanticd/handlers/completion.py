"""
POST /list_completions

Same body as /find_definition. Answers a JSON array of candidates, or
204 when there are none, the same not-found convention as definitions.
"""

import logging

from .payload import decode_object, context_from
from ..engine.base import EngineError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ok, no_content, unprocessable
from ..middleware.engine import EngineStore


logger = logging.getLogger(__name__)


def list_completions(request: HTTPRequest) -> HTTPResponse:
    engine = EngineStore.get(request)
    ctx = context_from(decode_object(request))

    try:
        completions = engine.list_completions(ctx)
    except EngineError as e:
        logger.debug(f"list_completions failed for {ctx.file_path}: {e}")
        return unprocessable(str(e))

    if not completions:
        return no_content()

    return ok([completion.to_dict() for completion in completions])
