"""Translate engine-neutral filter and ordering dicts into SQLAlchemy clauses.

Filter form::

    {"title": "Hello"}                         equality
    {"views": {"gte": 10, "lt": 100}}          operators, implicitly ANDed
    {"OR": [{"title": {"contains": "a"}}, {"status": "draft"}]}
    {"AND": [...]}, {"NOT": {...}}

Ordering form: ``[{"createdAt": "desc"}, {"title": "asc"}]`` or a single dict.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Table, and_, false, not_, or_, true
from sqlalchemy.sql.elements import ColumnElement

from crudforge.errors import ValidationError

OPERATORS = (
    "equals",
    "not",
    "in",
    "notIn",
    "contains",
    "icontains",
    "startsWith",
    "endsWith",
    "gt",
    "gte",
    "lt",
    "lte",
    "isNull",
)


def _invalid(message: str) -> ValidationError:
    return ValidationError(message, code="InvalidQuery")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _operator_clause(column, op: str, value: Any) -> ColumnElement:
    if op == "equals":
        return column.is_(None) if value is None else column == value
    if op == "not":
        if isinstance(value, dict):
            return not_(_field_clause(column, value))
        return column.is_not(None) if value is None else column != value
    if op == "in":
        values = list(value) if isinstance(value, (list, tuple)) else [value]
        return column.in_(values) if values else false()
    if op == "notIn":
        values = list(value) if isinstance(value, (list, tuple)) else [value]
        return column.not_in(values) if values else true()
    if op == "contains":
        return column.like(f"%{_escape_like(str(value))}%", escape="\\")
    if op == "icontains":
        return column.ilike(f"%{_escape_like(str(value))}%", escape="\\")
    if op == "startsWith":
        return column.like(f"{_escape_like(str(value))}%", escape="\\")
    if op == "endsWith":
        return column.like(f"%{_escape_like(str(value))}", escape="\\")
    if op == "gt":
        return column > value
    if op == "gte":
        return column >= value
    if op == "lt":
        return column < value
    if op == "lte":
        return column <= value
    if op == "isNull":
        return column.is_(None) if value else column.is_not(None)
    raise _invalid(f"Unknown filter operator '{op}'. Expected one of: {', '.join(OPERATORS)}")


def _field_clause(column, condition: Any) -> ColumnElement:
    if isinstance(condition, dict):
        clauses = [_operator_clause(column, op, value) for op, value in condition.items()]
        return and_(true(), *clauses)
    if condition is None:
        return column.is_(None)
    return column == condition


def compile_where(table: Table, where: dict[str, Any] | None) -> ColumnElement | None:
    """Build a WHERE clause for *table*, or None for an empty filter.

    Raises:
        ValidationError: unknown column or operator.
    """
    if not where:
        return None

    clauses: list[ColumnElement] = []
    for key, condition in where.items():
        if key in ("AND", "OR"):
            parts = condition if isinstance(condition, list) else [condition]
            if key == "OR" and not parts:
                # An empty disjunction matches nothing
                clauses.append(false())
                continue
            compiled = [c for c in (compile_where(table, p) for p in parts) if c is not None]
            if key == "OR" and len(compiled) < len(parts):
                # One branch matches everything
                continue
            if not compiled:
                continue
            clauses.append(and_(*compiled) if key == "AND" else or_(*compiled))
        elif key == "NOT":
            compiled = compile_where(table, condition)
            if compiled is not None:
                clauses.append(not_(compiled))
        else:
            if key not in table.c:
                raise _invalid(f"Unknown field '{key}' in filter")
            clauses.append(_field_clause(table.c[key], condition))

    if not clauses:
        return None
    return and_(*clauses) if len(clauses) > 1 else clauses[0]


def compile_order_by(table: Table, order_by: Any) -> list[ColumnElement]:
    """Build ORDER BY terms from ``{"field": "asc"|"desc"}`` entries."""
    if not order_by:
        return []
    entries = order_by if isinstance(order_by, list) else [order_by]

    terms = []
    for entry in entries:
        for key, direction in entry.items():
            if key not in table.c:
                raise _invalid(f"Unknown field '{key}' in sort")
            if str(direction).lower() == "desc":
                terms.append(table.c[key].desc())
            else:
                terms.append(table.c[key].asc())
    return terms
