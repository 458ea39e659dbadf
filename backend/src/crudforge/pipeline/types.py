"""Pipeline data structures.

A pipeline is an immutable, ordered tuple of named stages built once per
(model, action) at startup. Each request gets a fresh :class:`RequestContext`
and runs the stages in order; a stage returns ``None`` to continue or a
``Response`` to terminate.

The position of the response-emission point depends on which hook slots are
filled, captured by :class:`PipelineShape`:

    shape          pre-hook  handler  post-hook  emitter
    DIRECT            -       emits       -      pass-through
    PRE_DIRECT        x       emits       -      pass-through
    DEFERRED          -       defers      x      flushes
    PRE_DEFERRED      x       defers      x      flushes
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from crudforge.errors import AppError, EnvelopeError

if TYPE_CHECKING:
    from crudforge.auth.types import Identity

logger = logging.getLogger(__name__)

StageResult = Union[Response, None]
StageFn = Callable[["RequestContext"], Union[Awaitable[StageResult], StageResult]]


class HandlerMode(Enum):
    EMIT = "emit"
    DEFER = "defer"


class PipelineShape(Enum):
    """The four pipeline shapes over ``(has_pre, has_post)``."""

    DIRECT = "direct"
    PRE_DIRECT = "pre-direct"
    DEFERRED = "deferred"
    PRE_DEFERRED = "pre-deferred"

    @classmethod
    def select(cls, has_pre: bool, has_post: bool) -> PipelineShape:
        return _SHAPES[(bool(has_pre), bool(has_post))]

    @property
    def has_pre(self) -> bool:
        return self in (PipelineShape.PRE_DIRECT, PipelineShape.PRE_DEFERRED)

    @property
    def has_post(self) -> bool:
        return self in (PipelineShape.DEFERRED, PipelineShape.PRE_DEFERRED)

    @property
    def handler_mode(self) -> HandlerMode:
        return HandlerMode.DEFER if self.has_post else HandlerMode.EMIT


_SHAPES = {
    (False, False): PipelineShape.DIRECT,
    (True, False): PipelineShape.PRE_DIRECT,
    (False, True): PipelineShape.DEFERRED,
    (True, True): PipelineShape.PRE_DEFERRED,
}


@dataclass
class RequestContext:
    """Per-request state shared by the stages of one pipeline run.

    Attributes:
        request: The incoming Starlette request
        model: Model name (``"auth"`` for the auth surface)
        action: Route action (e.g., "findMany", "login")
        params: Path parameters
        query: Query-string parameters
        request_body: Parsed JSON body (normalized by validation, if any)
        identity: Set by the auth gate
        query_options: Set by query-option injection
        status: Response status attached by the handler or a hook
        body: Response payload attached by the handler or a hook
        response: The emitted response, once built
        error: The exception being handled, for on-error hooks
        state: Free-form scratch space for hooks
    """

    request: Request | None
    model: str
    action: str
    params: dict[str, Any] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)
    request_body: Any = None
    identity: Identity | None = None
    query_options: dict[str, Any] = field(default_factory=dict)
    status: int | None = None
    body: Any = None
    response: Response | None = None
    error: BaseException | None = None
    cookies: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)
    state: dict[str, Any] = field(default_factory=dict)

    def respond(self, status: int, body: Any = None) -> None:
        """Attach a status and optional body without emitting."""
        self.status = status
        self.body = body

    def set_cookie(self, key: str, value: str, **options: Any) -> None:
        self.cookies.append((key, value, options))


async def call_stage(fn: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async stage function."""
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass(frozen=True)
class Stage:
    name: str
    fn: StageFn


@dataclass(frozen=True)
class Pipeline:
    """An ordered, immutable sequence of stages for one (model, action).

    Attributes:
        model: Model name
        action: Route action
        shape: Hook/emission shape the pipeline was composed with
        stages: Stages in execution order; the emitter is always last
        on_error: Hooks run when a stage raises, before error conversion
    """

    model: str
    action: str
    shape: PipelineShape
    stages: tuple[Stage, ...]
    on_error: tuple[StageFn, ...] = ()

    @property
    def stage_names(self) -> tuple[str, ...]:
        return tuple(stage.name for stage in self.stages)

    async def run(self, ctx: RequestContext) -> Response:
        """Execute the stages; the single error boundary of the pipeline."""
        try:
            for stage in self.stages:
                result = await call_stage(stage.fn, ctx)
                if isinstance(result, Response):
                    return _apply_cookies(ctx, result)
            # Only reachable when the pipeline lacks its emitter
            raise EnvelopeError()
        except Exception as exc:
            return await self._handle_error(ctx, exc)

    async def _handle_error(self, ctx: RequestContext, exc: Exception) -> Response:
        ctx.error = exc
        for hook_fn in self.on_error:
            try:
                result = await call_stage(hook_fn, ctx)
            except Exception as hook_exc:
                logger.exception("on-error hook failed for %s.%s", self.model, self.action)
                exc = hook_exc
                break
            if isinstance(result, Response):
                return _apply_cookies(ctx, result)

        if isinstance(exc, AppError):
            if exc.status_code >= 500:
                logger.error("%s.%s failed: %s", self.model, self.action, exc.message)
            return JSONResponse(exc.to_dict(), status_code=exc.status_code)

        logger.error("Unhandled error in %s.%s", self.model, self.action, exc_info=exc)
        error = AppError("Internal server error", code="InternalServerError")
        return JSONResponse(error.to_dict(), status_code=500)


def _apply_cookies(ctx: RequestContext, response: Response) -> Response:
    for key, value, options in ctx.cookies:
        response.set_cookie(key, value, **options)
    ctx.cookies.clear()
    return response
