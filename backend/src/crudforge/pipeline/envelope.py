"""Response envelope: turn the status/body attached to a context into a response.

Rules, checked in order:

1. a response was already built          -> returned as-is
2. status and body present (not 204)     -> JSON body with that status
3. status present                        -> empty body with that status
4. neither                               -> 500 "No status or data attached to the response"
"""

import logging

from starlette.responses import JSONResponse, Response

from crudforge.errors import EnvelopeError
from crudforge.pipeline.types import HandlerMode, RequestContext, StageFn, call_stage

logger = logging.getLogger(__name__)


def emit(ctx: RequestContext) -> Response:
    """Build (once) and return the response for *ctx*."""
    if ctx.response is not None:
        return ctx.response

    if ctx.status is not None and ctx.body is not None and ctx.status != 204:
        ctx.response = JSONResponse(ctx.body, status_code=ctx.status)
    elif ctx.status is not None:
        ctx.response = Response(status_code=ctx.status)
    else:
        error = EnvelopeError()
        logger.error("%s.%s finished without a response: %s", ctx.model, ctx.action, error.message)
        ctx.response = JSONResponse(error.to_dict(), status_code=error.status_code)
    return ctx.response


async def emitter_stage(ctx: RequestContext) -> Response:
    """Terminal stage of every pipeline."""
    return emit(ctx)


def handler_stage(handler: StageFn, mode: HandlerMode) -> StageFn:
    """Wrap a core handler for the pipeline's emission mode.

    In EMIT mode the response is built right after the handler; the emitter
    stage then passes it through. In DEFER mode the handler only attaches
    status and body so a post-hook can change them before emission.
    """

    async def run_handler(ctx: RequestContext):
        result = await call_stage(handler, ctx)
        if result is not None:
            return result
        if mode is HandlerMode.EMIT:
            emit(ctx)
        return None

    run_handler.__name__ = getattr(handler, "__name__", "handler")
    return run_handler
