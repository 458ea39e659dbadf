"""FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from crudforge.api.runtime import Runtime, build_runtime
from crudforge.components import AUTH_COMPONENT, FILE_UPLOAD_COMPONENT
from crudforge.config import AppConfig, resolve_base_path
from crudforge.core.naming import snake_case
from crudforge.errors import AppError
from crudforge.pipeline.composer import ComposedRoute
from crudforge.pipeline.types import RequestContext

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("crudforge").setLevel(level)


def _endpoint(route: ComposedRoute):
    pipeline = route.pipeline

    async def endpoint(request: Request):
        ctx = RequestContext(
            request=request,
            model=route.model,
            action=route.action,
            params=dict(request.path_params),
            query=dict(request.query_params),
        )
        return await pipeline.run(ctx)

    endpoint.__name__ = f"{snake_case(route.model)}_{snake_case(route.action)}"
    return endpoint


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


def mount_routes(app: FastAPI, runtime: Runtime) -> None:
    """Mount custom routers, then every composed pipeline, under the API prefix."""
    prefix = runtime.config.api_prefix.rstrip("/")

    for name in (AUTH_COMPONENT, FILE_UPLOAD_COMPONENT, *sorted(runtime.loader.models)):
        router = runtime.components.router_for(name)
        if router is None:
            continue
        if name == AUTH_COMPONENT:
            mount = prefix
        elif name == FILE_UPLOAD_COMPONENT:
            mount = f"{prefix}{runtime.config.file_upload.base_route}"
        else:
            mount = f"{prefix}/{runtime.loader.models[name].plural_name}"
        app.include_router(router, prefix=mount)
        logger.debug("Mounted custom router for %s at %s", name, mount or "/")

    for route in runtime.routes:
        app.add_api_route(
            f"{prefix}{route.path}",
            _endpoint(route),
            methods=[route.method],
            name=f"{route.model}.{route.action}",
        )


def create_app(
    base_path: Path | None = None,
    config: AppConfig | None = None,
    **overrides: Any,
) -> FastAPI:
    """Build the application.

    Args:
        base_path: Project root holding ``metadata/``; defaults to the
            working directory (or its parent when run from ``backend/``)
        config: Settings; loaded from ``base_path`` if None
        **overrides: ``loader``, ``engine`` or ``components`` passed on to
            :func:`build_runtime`
    """
    if config is None:
        config = AppConfig.load(base_path or resolve_base_path())
    configure_logging(config.log_level)
    runtime = build_runtime(config, **overrides)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime.engine.create_all()
        logger.info(
            "CrudForge ready: %d models, %d routes under %s",
            len(runtime.loader.models),
            len(runtime.routes),
            config.api_prefix,
        )
        yield
        runtime.engine.dispose()

    app = FastAPI(title="CrudForge API", lifespan=lifespan)
    app.state.runtime = runtime
    app.add_exception_handler(AppError, app_error_handler)
    mount_routes(app, runtime)
    return app
