"""Route pipeline composition.

Every (model, action) gets one pipeline, built once at startup:

    authenticate -> authorize -> parse_body -> validate -> inject_query_options
        -> before_hooks -> handler -> after_hooks -> emit

``authenticate`` is left out when authentication is off for the action.
``authorize`` is always present and does nothing unless the resource declares
an access-control table. ``parse_body`` exists for actions that take a JSON
body, ``validate`` only when a validation artifact is registered for the
active backend, and the hook stages only when hooks are registered for their
slot. Whether the handler emits or defers follows from the
:class:`PipelineShape`.

Besides the models, two surfaces are composed the same way: the auth surface
(``"auth"``) and the upload surface (``"fileUpload"``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from starlette.responses import Response

from crudforge.auth.gate import AuthGate, access_stage
from crudforge.auth.permissions import ACCESS_ACTION_FOR
from crudforge.components import (
    AUTH_COMPONENT,
    FILE_UPLOAD_COMPONENT,
    ComponentRegistry,
    normalize_path,
)
from crudforge.config import AppConfig
from crudforge.handlers.capabilities import handler_for
from crudforge.hooks.types import HookFn, HookSlot
from crudforge.metadata.loader import AuthPolicy, MetadataLoader, RouterConfig
from crudforge.pipeline.body import parse_json_body
from crudforge.pipeline.envelope import emitter_stage, handler_stage
from crudforge.pipeline.query_options import query_option_stage, resolve_query_options
from crudforge.pipeline.types import Pipeline, PipelineShape, RequestContext, Stage, call_stage
from crudforge.validation.stage import validation_stage
from crudforge.validation.types import ARTIFACT_FOR_ACTION, ValidatorBackend

logger = logging.getLogger(__name__)

# (action, method, path relative to the model collection)
MODEL_ROUTES = (
    ("createOne", "POST", ""),
    ("findMany", "GET", ""),
    ("createMany", "POST", "/many"),
    ("updateMany", "PATCH", "/many"),
    ("deleteMany", "DELETE", "/many"),
    ("findOne", "GET", "/{id}"),
    ("updateOne", "PATCH", "/{id}"),
    ("deleteOne", "DELETE", "/{id}"),
)

# (action, method, path relative to the API prefix); "{users}" is the user
# model's collection segment
AUTH_ROUTES = (
    ("getMe", "GET", "/{users}/me"),
    ("updateMe", "PATCH", "/{users}/me"),
    ("deleteMe", "DELETE", "/{users}/me"),
    ("login", "POST", "/auth/login"),
    ("logout", "DELETE", "/auth/logout"),
    ("signup", "POST", "/auth/signup"),
    ("updatePassword", "POST", "/auth/update-password"),
)

# (action, method, path relative to the upload base route)
FILE_ROUTES = (
    ("findFile", "GET", "/{fileType}/{fileName}"),
    ("uploadFile", "POST", "/{fileType}"),
    ("updateFile", "PATCH", "/{fileType}/{fileName}"),
    ("deleteFile", "DELETE", "/{fileType}/{fileName}"),
)

# Auth actions reachable without a credential
ANONYMOUS_AUTH_ACTIONS = ("login", "signup")

# Actions whose request body is JSON
JSON_BODY_ACTIONS = frozenset(
    {
        "createOne",
        "createMany",
        "updateOne",
        "updateMany",
        "updateMe",
        "login",
        "signup",
        "updatePassword",
    }
)


@dataclass(frozen=True)
class ComposedRoute:
    """A pipeline and where it is mounted, relative to the API prefix."""

    method: str
    path: str
    model: str
    action: str
    pipeline: Pipeline


@dataclass(frozen=True)
class Surface:
    """What the composer needs to know about one resource."""

    policy: AuthPolicy
    query_options: dict[str, Any]
    router: RouterConfig


def hook_stage(hooks: tuple[HookFn, ...]):
    """Run *hooks* in order; the first one returning a Response terminates."""

    async def run_hooks(ctx: RequestContext):
        for fn in hooks:
            result = await call_stage(fn, ctx)
            if isinstance(result, Response):
                return result
        return None

    return run_hooks


class PipelineComposer:
    """Builds the immutable pipelines for every generated route.

    Args:
        loader: Resolved model metadata
        components: Discovered hooks, validation artifacts and routers
        config: Application settings
        gate: Auth gate, or None when no user model is declared
        backend: Active validator backend
        resources: Resource per model name, plus ``"auth"`` and
            ``"fileUpload"`` for the auth and upload surfaces
    """

    def __init__(
        self,
        loader: MetadataLoader,
        components: ComponentRegistry,
        config: AppConfig,
        gate: AuthGate | None,
        backend: ValidatorBackend,
        resources: dict[str, Any],
    ):
        self.loader = loader
        self.components = components
        self.config = config
        self.gate = gate
        self.backend = backend
        self.resources = resources

    def _surface(self, name: str) -> Surface:
        if name == FILE_UPLOAD_COMPONENT:
            upload = self.config.file_upload
            return Surface(upload.auth, {}, upload.router)
        if name == AUTH_COMPONENT:
            # No access table on the auth surface; it reads with the user model's options
            user_model = self.loader.models[self.config.auth.user_model]
            return Surface(AuthPolicy(), user_model.query_options, RouterConfig())
        model = self.loader.models[name]
        return Surface(model.auth, model.query_options, model.router)

    def _requires_authentication(self, name: str, policy: AuthPolicy, action: str) -> bool:
        if self.gate is None or not self.config.auth.enabled:
            return False
        if name == AUTH_COMPONENT:
            return action not in ANONYMOUS_AUTH_ACTIONS
        return policy.requires_authentication(ACCESS_ACTION_FOR[action])

    def compose(self, name: str, action: str) -> Pipeline:
        """Compose the pipeline for *action* on model *name* (or a surface).

        Raises:
            ValueError: If the resource for *name* lacks the capability.
        """
        surface = self._surface(name)
        handler = handler_for(self.resources[name], action)
        if handler is None:
            raise ValueError(f"{name} does not support '{action}'")

        before = self.components.hooks_for(name, action, HookSlot.BEFORE)
        after = self.components.hooks_for(name, action, HookSlot.AFTER)
        shape = PipelineShape.select(bool(before), bool(after))

        stages: list[Stage] = []
        if self._requires_authentication(name, surface.policy, action):
            stages.append(Stage("authenticate", self.gate.authenticate))
        stages.append(
            Stage(
                "authorize",
                access_stage(
                    name,
                    surface.policy,
                    ACCESS_ACTION_FOR.get(action, action),
                    self.config.auth.public_actions,
                ),
            )
        )
        if action in JSON_BODY_ACTIONS:
            stages.append(Stage("parse_body", parse_json_body))

        artifact_action = ARTIFACT_FOR_ACTION.get(action)
        if artifact_action is not None:
            artifact = self.components.artifact_for(name, artifact_action, self.backend.name)
            if artifact is not None:
                stages.append(Stage("validate", validation_stage(self.backend, artifact)))

        stages.append(
            Stage(
                "inject_query_options",
                query_option_stage(
                    resolve_query_options(surface.query_options, action),
                    self.config.allow_query_options,
                ),
            )
        )
        if shape.has_pre:
            stages.append(Stage("before_hooks", hook_stage(before)))
        stages.append(Stage("handler", handler_stage(handler, shape.handler_mode)))
        if shape.has_post:
            stages.append(Stage("after_hooks", hook_stage(after)))
        stages.append(Stage("emit", emitter_stage))

        return Pipeline(
            model=name,
            action=action,
            shape=shape,
            stages=tuple(stages),
            on_error=self.components.hooks_for(name, action, HookSlot.ON_ERROR),
        )

    def _routes_for(self, name: str, table, mount: str) -> list[ComposedRoute]:
        router = self._surface(name).router
        custom = self.components.custom_routes(name)
        routes = []
        for action, method, relative in table:
            if router.is_disabled(action):
                logger.debug("Skipping disabled route %s.%s", name, action)
                continue
            if "{users}" in relative:
                users = self.loader.models[self.config.auth.user_model].plural_name
                relative = relative.replace("{users}", users)
            if (method, normalize_path(relative)) in custom:
                logger.debug("Skipping %s %s%s: served by a custom router", method, mount, relative)
                continue
            pipeline = self.compose(name, action)
            routes.append(ComposedRoute(method, f"{mount}{relative}", name, action, pipeline))
            logger.debug(
                "Composed %s %s%s -> %s.%s (%s)",
                method,
                mount,
                relative,
                name,
                action,
                pipeline.shape.value,
            )
        return routes

    def compose_all(self) -> list[ComposedRoute]:
        """Compose every enabled route; the auth surface comes first."""
        routes: list[ComposedRoute] = []
        if AUTH_COMPONENT in self.resources:
            routes.extend(self._routes_for(AUTH_COMPONENT, AUTH_ROUTES, ""))
        if FILE_UPLOAD_COMPONENT in self.resources:
            mount = self.config.file_upload.base_route
            routes.extend(self._routes_for(FILE_UPLOAD_COMPONENT, FILE_ROUTES, mount))
        for name in sorted(self.loader.models):
            if name not in self.resources:
                continue
            model = self.loader.models[name]
            routes.extend(self._routes_for(name, MODEL_ROUTES, f"/{model.plural_name}"))
        logger.info("Composed %d routes for %d models", len(routes), len(self.loader.models))
        return routes
