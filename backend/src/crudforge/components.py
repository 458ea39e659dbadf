"""Startup discovery of user components.

For every model, discovery imports these optional modules once, at startup,
from the configured modules package (``modulesPackage`` /
``CRUDFORGE_MODULES_PACKAGE``)::

    <package>/<model_snake>/hooks.py     before<Action> / after<Action> / on<Action>Error
    <package>/<model_snake>/schemas.py   JSON Schema dicts   (jsonschema backend)
    <package>/<model_snake>/dtos.py      pydantic models     (pydantic backend)
    <package>/<model_snake>/router.py    ``router``: a custom APIRouter

The auth surface uses ``<package>/auth/`` and the upload surface
``<package>/file_upload/``. Validation artifacts are module
attributes named after the action they validate (``create``, ``update``,
``create_many``, ``update_many``, ``login``, ``signup``, ``update_me``,
``update_password``).

The resulting registry is a plain typed map; nothing is imported lazily
while serving requests.
"""

from __future__ import annotations

import importlib
import logging
import re
from collections.abc import Iterable
from types import ModuleType
from typing import Any

from fastapi import APIRouter
from fastapi.routing import APIRoute

from crudforge.core.naming import snake_case
from crudforge.hooks.types import HookFn, HookKey, HookSlot, parse_hook_name
from crudforge.validation.types import ARTIFACT_ACTIONS

logger = logging.getLogger(__name__)

AUTH_COMPONENT = "auth"
FILE_UPLOAD_COMPONENT = "fileUpload"

# Validator backend name -> module holding its artifacts
ARTIFACT_MODULES = {"jsonschema": "schemas", "pydantic": "dtos"}


def _import_optional(name: str) -> ModuleType | None:
    """Import *name*, or return None if that module (or a parent) does not exist."""
    try:
        return importlib.import_module(name)
    except ModuleNotFoundError as exc:
        if exc.name and (name == exc.name or name.startswith(exc.name + ".")):
            return None
        raise


def normalize_path(path: str) -> str:
    path = re.sub(r"\{[^}]+\}", "{id}", path)
    return path.rstrip("/")


class ComponentRegistry:
    """Hooks, validation artifacts and custom routers per model."""

    def __init__(self):
        self._hooks: dict[HookKey, list[HookFn]] = {}
        self._artifacts: dict[tuple[str, str, str], Any] = {}
        self._routers: dict[str, APIRouter] = {}

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @classmethod
    def discover(cls, package: str | None, models: Iterable[str]) -> ComponentRegistry:
        """Build a registry from the modules under *package*.

        Raises:
            ModuleNotFoundError: If *package* itself cannot be imported.
        """
        registry = cls()
        if not package:
            return registry

        importlib.import_module(package)
        for model in (*models, AUTH_COMPONENT, FILE_UPLOAD_COMPONENT):
            base = f"{package}.{snake_case(model)}"

            hooks_module = _import_optional(f"{base}.hooks")
            if hooks_module is not None:
                registry.register_module_hooks(hooks_module, model)

            for backend, suffix in ARTIFACT_MODULES.items():
                module = _import_optional(f"{base}.{suffix}")
                if module is not None:
                    registry.register_module_artifacts(module, model, backend)

            router_module = _import_optional(f"{base}.router")
            router = getattr(router_module, "router", None)
            if router is not None:
                registry.register_router(model, router)

        logger.info("Discovered components in %s: %s", package, registry.summary())
        return registry

    def register_module_hooks(self, module: ModuleType, model: str) -> None:
        """Register the hooks a module defines for *model*.

        Functions marked with ``@hook`` are registered for the model they
        name; other public attributes count when their name is a hook name.
        """
        for name, value in vars(module).items():
            if name.startswith("_"):
                continue
            marked = getattr(value, "__crudforge_hook__", None)
            if marked is not None:
                self.register_hook(marked[0], marked[1], value)
                continue
            if parse_hook_name(name) is None:
                continue
            if callable(value):
                self.register_hook(model, name, value)
            elif isinstance(value, (list, tuple)) and all(callable(v) for v in value):
                for fn in value:
                    self.register_hook(model, name, fn)

    def register_module_artifacts(self, module: ModuleType, model: str, backend: str) -> None:
        for action in ARTIFACT_ACTIONS:
            artifact = getattr(module, snake_case(action), None)
            if artifact is not None:
                self.register_artifact(model, action, backend, artifact)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_hook(self, model: str, name: str, fn: HookFn) -> None:
        """Register *fn* under a hook name such as ``afterFindMany``.

        Raises:
            ValueError: If *name* is not a hook name.
        """
        parsed = parse_hook_name(name)
        if parsed is None:
            raise ValueError(f"'{name}' is not a hook name")
        slot, action = parsed
        self._hooks.setdefault(HookKey(model, action, slot), []).append(fn)

    def register_artifact(self, model: str, action: str, backend: str, artifact: Any) -> None:
        if action not in ARTIFACT_ACTIONS:
            raise ValueError(
                f"Cannot register a validation artifact for '{action}'. "
                f"Expected one of: {', '.join(ARTIFACT_ACTIONS)}"
            )
        self._artifacts[(model, action, backend)] = artifact

    def register_router(self, model: str, router: APIRouter) -> None:
        self._routers[model] = router

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def hooks_for(self, model: str, action: str, slot: HookSlot) -> tuple[HookFn, ...]:
        return tuple(self._hooks.get(HookKey(model, action, slot), ()))

    def has_hook(self, model: str, action: str, slot: HookSlot) -> bool:
        return bool(self._hooks.get(HookKey(model, action, slot)))

    def artifact_for(self, model: str, action: str, backend: str) -> Any | None:
        return self._artifacts.get((model, action, backend))

    def router_for(self, model: str) -> APIRouter | None:
        return self._routers.get(model)

    def custom_routes(self, model: str) -> set[tuple[str, str]]:
        """(method, path) pairs a custom router serves, paths relative to its mount."""
        router = self._routers.get(model)
        if router is None:
            return set()
        served = set()
        for route in router.routes:
            if isinstance(route, APIRoute):
                for method in route.methods:
                    served.add((method.upper(), normalize_path(route.path)))
        return served

    def summary(self) -> dict[str, int]:
        return {
            "hooks": sum(len(fns) for fns in self._hooks.values()),
            "artifacts": len(self._artifacts),
            "routers": len(self._routers),
        }
