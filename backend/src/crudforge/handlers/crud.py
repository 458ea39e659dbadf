"""Core CRUD handlers for generated model endpoints.

Handlers never build responses themselves: they attach a status and body to
the request context and the pipeline decides when to emit.

    createOne   201 {data}
    findMany    200 {total, results, data}
    findOne     200 {data}                  404 if missing
    updateOne   200 {data}                  404 if missing
    deleteOne   204                         404 if missing
    createMany  201 {results, data: {count}}
    updateMany  200 {results, data: {count}} 400 without filters, 404 if none
    deleteMany  200 {results, data: {count}} 400 without filters, 404 if none
"""

from __future__ import annotations

import logging
from typing import Any

from crudforge.errors import NotFoundError, ValidationError
from crudforge.handlers.query import ListQuery, parse_filters
from crudforge.metadata.loader import ModelDefinition
from crudforge.persistence.adapter import DataEngine
from crudforge.pipeline.types import RequestContext
from crudforge.relations.resolver import CREATE_IGNORED_ACTIONS, RelationResolver

logger = logging.getLogger(__name__)


def coerce_identifier(model: ModelDefinition, raw: Any) -> Any:
    """Path ids arrive as strings; integer keys are converted."""
    f = model.get_field(model.primary_key)
    if f is not None and f.type == "integer" and isinstance(raw, str):
        try:
            return int(raw)
        except ValueError:
            raise NotFoundError(f"{model.name} with ID {raw} not found") from None
    return raw


def require_object(body: Any) -> dict[str, Any]:
    if not isinstance(body, dict):
        raise ValidationError(
            "Request body must be a JSON object",
            details=[{"field": "", "message": "expected an object"}],
        )
    return body


def require_list(body: Any) -> list[dict[str, Any]]:
    if not isinstance(body, list) or not all(isinstance(item, dict) for item in body):
        raise ValidationError(
            "Request body must be a JSON array of objects",
            details=[{"field": "", "message": "expected an array of objects"}],
        )
    return body


class ModelResource:
    """Creatable, Findable, Updatable and Deletable resource for one model."""

    def __init__(self, model: ModelDefinition, engine: DataEngine, resolver: RelationResolver):
        self.model = model
        self.engine = engine
        self.resolver = resolver

    def _resolve_write(self, body: dict[str, Any], creating: bool) -> dict[str, Any]:
        ignored = CREATE_IGNORED_ACTIONS if creating else ()
        self.resolver.check_action_tags(body, self.model.name, ignored)
        return self.resolver.resolve(body, self.model.name, ignored)

    def _pk_where(self, ctx: RequestContext) -> dict[str, Any]:
        return {self.model.primary_key: coerce_identifier(self.model, ctx.params["id"])}

    def _not_found(self, ctx: RequestContext) -> NotFoundError:
        return NotFoundError(f"{self.model.name} with ID {ctx.params['id']} not found")

    def _batch_where(self, ctx: RequestContext, verb: str) -> dict[str, Any]:
        where = parse_filters(ctx.query, self.model)
        if not where:
            raise ValidationError(
                f"Filter criteria not provided for bulk {verb}",
                code="MissingFilterCriteria",
            )
        base = ctx.query_options.get("where")
        return {"AND": [base, where]} if base else where

    # Creatable

    async def create_one(self, ctx: RequestContext) -> None:
        data = self._resolve_write(require_object(ctx.request_body), creating=True)
        record = self.engine.create(self.model.name, data, ctx.query_options)
        ctx.respond(201, {"data": record})

    async def create_many(self, ctx: RequestContext) -> None:
        items = [
            self._resolve_write(item, creating=True)
            for item in require_list(ctx.request_body)
        ]
        count = self.engine.create_many(self.model.name, items)
        ctx.respond(201, {"results": count, "data": {"count": count}})

    # Findable

    async def find_many(self, ctx: RequestContext) -> None:
        options = ListQuery.parse(ctx.query, self.model).to_options(ctx.query_options)
        records = self.engine.find_many(self.model.name, options)
        total = self.engine.count(self.model.name, options.get("where"))
        ctx.respond(200, {"total": total, "results": len(records), "data": records})

    async def find_one(self, ctx: RequestContext) -> None:
        record = self.engine.find_one(self.model.name, self._pk_where(ctx), ctx.query_options)
        if record is None:
            raise self._not_found(ctx)
        ctx.respond(200, {"data": record})

    # Updatable

    async def update_one(self, ctx: RequestContext) -> None:
        data = self._resolve_write(require_object(ctx.request_body), creating=False)
        record = self.engine.update(
            self.model.name, self._pk_where(ctx), data, ctx.query_options
        )
        if record is None:
            raise self._not_found(ctx)
        ctx.respond(200, {"data": record})

    async def update_many(self, ctx: RequestContext) -> None:
        where = self._batch_where(ctx, "update")
        data = require_object(ctx.request_body)
        count = self.engine.update_many(self.model.name, where, data)
        if count == 0:
            raise NotFoundError(f"No {self.model.name} records found to update")
        ctx.respond(200, {"results": count, "data": {"count": count}})

    # Deletable

    async def delete_one(self, ctx: RequestContext) -> None:
        where = self._pk_where(ctx)
        base = ctx.query_options.get("where")
        record = self.engine.delete(self.model.name, {"AND": [where, base]} if base else where)
        if record is None:
            raise self._not_found(ctx)
        ctx.respond(204)

    async def delete_many(self, ctx: RequestContext) -> None:
        where = self._batch_where(ctx, "delete")
        count = self.engine.delete_many(self.model.name, where)
        if count == 0:
            raise NotFoundError(f"No {self.model.name} records found to delete")
        ctx.respond(200, {"results": count, "data": {"count": count}})
