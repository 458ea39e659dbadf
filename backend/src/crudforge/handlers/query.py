"""Query-string parsing for list and batch endpoints.

    GET /api/posts?status=draft&views__gte=10&search=hello&sort=-createdAt
                  &fields=title,-body,+category&page=2&limit=10

Filters are ``field=value`` or ``field__op=value`` with the operators of
:mod:`crudforge.persistence.filters`; ``filterMode`` (AND | OR) combines
them. ``search`` matches any text field case-insensitively. ``sort`` takes
comma-separated fields, ``-`` for descending. ``fields`` selects plain
names, omits ``-name`` and includes relations with ``+name``. ``limit``
defaults to 30; ``limit=all`` disables paging.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from crudforge.errors import ValidationError
from crudforge.metadata.loader import FieldDefinition, ModelDefinition
from crudforge.persistence.filters import OPERATORS

RESERVED_PARAMS = ("page", "limit", "sort", "fields", "search", "filterMode", "queryOptions")
DEFAULT_LIMIT = 30
FILTER_MODES = ("AND", "OR")
SEARCHABLE_TYPES = ("string", "text")


def _invalid(param: str, message: str) -> ValidationError:
    return ValidationError(
        f"Invalid query parameter '{param}': {message}",
        details=[{"field": param, "message": message}],
        code="InvalidQuery",
    )


def _coerce(param: str, f: FieldDefinition, raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    if f.type == "integer":
        try:
            return int(raw)
        except ValueError:
            raise _invalid(param, f"'{raw}' is not an integer") from None
    if f.type == "number":
        try:
            return float(raw)
        except ValueError:
            raise _invalid(param, f"'{raw}' is not a number") from None
    if f.type == "boolean":
        return _parse_bool(param, raw)
    return raw


def _parse_bool(param: str, raw: str) -> bool:
    lowered = raw.lower()
    if lowered in ("true", "1"):
        return True
    if lowered in ("false", "0"):
        return False
    raise _invalid(param, f"'{raw}' is not a boolean")


def _positive_int(param: str, raw: Any) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise _invalid(param, f"'{raw}' is not a positive integer") from None
    if value < 1:
        raise _invalid(param, f"'{raw}' is not a positive integer")
    return value


def parse_filters(params: Mapping[str, Any], model: ModelDefinition) -> dict[str, Any] | None:
    """Build the engine filter from non-reserved query parameters and ``search``."""
    hidden = set(model.hidden_field_names)
    conditions: list[dict[str, Any]] = []

    for param, raw in params.items():
        if param in RESERVED_PARAMS:
            continue
        name, _, op = param.partition("__")
        f = model.get_field(name)
        if f is None or name in hidden:
            raise _invalid(param, f"unknown field '{name}'")
        if not op:
            conditions.append({name: _coerce(param, f, raw)})
            continue
        if op not in OPERATORS:
            raise _invalid(param, f"unknown operator '{op}'")
        if op == "isNull":
            value: Any = _parse_bool(param, raw) if isinstance(raw, str) else bool(raw)
        elif op in ("in", "notIn"):
            items = raw.split(",") if isinstance(raw, str) else list(raw)
            value = [_coerce(param, f, item.strip() if isinstance(item, str) else item) for item in items]
        elif op in ("contains", "icontains", "startsWith", "endsWith"):
            value = raw
        else:
            value = _coerce(param, f, raw)
        conditions.append({name: {op: value}})

    mode = str(params.get("filterMode", "AND")).upper()
    if mode not in FILTER_MODES:
        raise _invalid("filterMode", f"expected one of {', '.join(FILTER_MODES)}")

    where: dict[str, Any] | None = None
    if len(conditions) == 1:
        where = conditions[0]
    elif conditions:
        where = {mode: conditions}

    term = params.get("search")
    if term:
        searchable = [
            f.name for f in model.fields if f.type in SEARCHABLE_TYPES and f.name not in hidden
        ]
        # Without searchable fields the empty OR matches nothing
        search = {"OR": [{name: {"icontains": term}} for name in searchable]}
        where = search if where is None else {"AND": [where, search]}

    return where


@dataclass
class ListQuery:
    """A parsed findMany query."""

    where: dict[str, Any] | None = None
    order_by: list[dict[str, str]] = field(default_factory=list)
    skip: int = 0
    take: int | None = DEFAULT_LIMIT
    select: dict[str, bool] = field(default_factory=dict)
    omit: dict[str, bool] = field(default_factory=dict)
    include: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def parse(cls, params: Mapping[str, Any], model: ModelDefinition) -> ListQuery:
        query = cls(where=parse_filters(params, model))

        for item in str(params.get("sort") or "").split(","):
            item = item.strip()
            if not item:
                continue
            name = item.lstrip("-")
            if model.get_field(name) is None:
                raise _invalid("sort", f"unknown field '{name}'")
            query.order_by.append({name: "desc" if item.startswith("-") else "asc"})

        for item in str(params.get("fields") or "").split(","):
            item = item.strip()
            if not item:
                continue
            name = item.lstrip("+-")
            if model.get_field(name) is None and model.get_relation(name) is None:
                raise _invalid("fields", f"unknown field '{name}'")
            if item.startswith("-"):
                query.omit[name] = True
            elif item.startswith("+"):
                if model.get_relation(name) is not None:
                    query.include[name] = True
                else:
                    query.select[name] = True
            else:
                query.select[name] = True

        limit = params.get("limit")
        if limit == "all":
            query.take = None
        else:
            if limit is not None:
                query.take = _positive_int("limit", limit)
            page = _positive_int("page", params["page"]) if params.get("page") else 1
            query.skip = (page - 1) * query.take

        return query

    def to_options(self, base: dict[str, Any] | None = None) -> dict[str, Any]:
        """Merge into the injected query options; request values win."""
        options = copy.deepcopy(base or {})

        if self.where:
            base_where = options.get("where")
            options["where"] = {"AND": [base_where, self.where]} if base_where else self.where
        if self.order_by:
            options["orderBy"] = list(self.order_by)
        if self.select:
            options["select"] = dict(self.select)
        if self.omit:
            options["omit"] = {**_as_flags(options.get("omit")), **self.omit}
        if self.include:
            options["include"] = {
                **{name: True for name in self.include},
                **_as_flags(options.get("include")),
            }

        options["skip"] = self.skip
        if self.take is None:
            options.pop("take", None)
        else:
            options["take"] = self.take
        return options


def _as_flags(value: Any) -> dict[str, Any]:
    if not value:
        return {}
    if isinstance(value, dict):
        return dict(value)
    return {name: True for name in value}
