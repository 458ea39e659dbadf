"""Request-body parsing stage.

Bodies are read inside the pipeline, after the auth and access stages, so a
rejected credential wins over a malformed body and parse failures reach the
pipeline's error boundary (and its on-error hooks).
"""

from __future__ import annotations

import json
from typing import Any

from starlette.requests import Request

from crudforge.errors import ValidationError
from crudforge.pipeline.types import RequestContext


async def read_json_body(request: Request) -> Any:
    """The parsed JSON body, or None for an empty one."""
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise ValidationError(
            "Malformed JSON body",
            details=[{"field": "", "message": str(exc)}],
        ) from exc


async def parse_json_body(ctx: RequestContext):
    # Contexts built without a request keep the body they were given
    if ctx.request is not None:
        ctx.request_body = await read_json_body(ctx.request)
    return None
