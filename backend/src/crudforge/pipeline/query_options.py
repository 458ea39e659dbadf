"""Query-option injection.

Each model may declare default query options (``select``, ``omit``,
``include``, ``where``, ``orderBy``) under ``queryOptions`` in its metadata::

    queryOptions:
      global:   {omit: {internalNotes: true}}
      find:     {include: {category: true}}
      saveOne:  {include: {tags: true}}
      findMany: {orderBy: [{createdAt: desc}]}

For an action the blocks merge in order: ``global``, the general keys for
that action, then the action's own block. Later blocks win.
"""

from __future__ import annotations

import copy
import json
from typing import Any

from crudforge.errors import ValidationError
from crudforge.pipeline.types import RequestContext, StageFn

GENERAL_KEYS: dict[str, tuple[str, ...]] = {
    "findMany": ("find",),
    "findOne": ("find",),
    "createOne": ("create", "save", "saveOne"),
    "createMany": ("create", "save", "saveMany"),
    "updateOne": ("update", "save", "saveOne"),
    "updateMany": ("update", "save", "saveMany"),
    "deleteOne": ("delete",),
    "deleteMany": ("delete",),
    "getMe": ("find",),
    "updateMe": ("update", "save", "saveOne"),
    "signup": ("create", "save", "saveOne"),
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into a copy of *base*."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def resolve_query_options(declared: dict[str, Any] | None, action: str) -> dict[str, Any]:
    """Merge the declared option blocks that apply to *action*."""
    if not declared:
        return {}
    merged: dict[str, Any] = {}
    for key in ("global", *GENERAL_KEYS.get(action, ()), action):
        block = declared.get(key)
        if isinstance(block, dict):
            merged = deep_merge(merged, block)
    return merged


def parse_request_options(raw: Any) -> dict[str, Any]:
    """Parse the ``queryOptions`` request parameter (a JSON object)."""
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            "queryOptions must be a JSON object",
            details=[{"field": "queryOptions", "message": str(exc)}],
        ) from exc
    if not isinstance(parsed, dict):
        raise ValidationError(
            "queryOptions must be a JSON object",
            details=[{"field": "queryOptions", "message": "not an object"}],
        )
    return parsed


def query_option_stage(options: dict[str, Any], allow_request_options: bool = False) -> StageFn:
    """Stage injecting the pre-merged options (and request overrides if allowed)."""
    frozen = copy.deepcopy(options)

    async def inject_query_options(ctx: RequestContext):
        merged = copy.deepcopy(frozen)
        if allow_request_options and "queryOptions" in ctx.query:
            merged = deep_merge(merged, parse_request_options(ctx.query["queryOptions"]))
        ctx.query_options = merged
        return None

    return inject_query_options
