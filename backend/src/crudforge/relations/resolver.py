"""Relation resolution: turn nested request payloads into operation trees.

A write payload may carry related records inline::

    {"title": "P", "comments": [{"id": "1", "text": "hi"}], "category": {"id": "7"}}

For every relation field present, the resolver decides per nested item whether
it should be connected, created, updated, disconnected or deleted, and
rewrites the field into buckets the data engine consumes directly::

    {"title": "P",
     "comments": {"update": [{"match": {"id": "1"}, "data": {"text": "hi"}}]},
     "category": {"connect": {"id": "7"}}}

Clients can force a decision with the ``apiAction`` tag on a nested item.
Tags never reach the engine; they are stripped from the result.

Rules per nested item, first match wins:

1. tagged ``delete``     -> collected into one ``deleteMany`` per relation
2. tagged ``disconnect`` -> ``disconnect``
3. connectable           -> ``connect``
4. no identifier         -> ``create`` (nested relations resolved recursively)
5. otherwise             -> ``update`` as ``{match, data}`` (recursive)

An item is connectable when it is tagged ``connect``, or holds exactly one
field that is the target's identifier or one of its unique fields, with a
scalar value.
"""

from __future__ import annotations

import copy
from typing import Any, Iterable

from crudforge.errors import ValidationError
from crudforge.relations.catalog import RelationCatalog, RelationCatalogEntry, RelationField

ACTION_TAG = "apiAction"

ACTION_TAGS = ("create", "connect", "update", "delete", "disconnect")

# Keys that mark a relation value as already being in operation-tree form
OPERATION_KEYS = ("create", "connect", "update", "delete", "disconnect", "deleteMany")

# Tags that make no sense when the owning record does not exist yet
CREATE_IGNORED_ACTIONS = ("delete", "disconnect", "update")

_SCALARS = (str, int, float, bool)


def strip_action_tags(value: Any) -> Any:
    """Return a copy of *value* with every ``apiAction`` key removed, at any depth."""
    if isinstance(value, dict):
        return {k: strip_action_tags(v) for k, v in value.items() if k != ACTION_TAG}
    if isinstance(value, list):
        return [strip_action_tags(item) for item in value]
    return value


def is_operation_tree(value: Any) -> bool:
    return isinstance(value, dict) and any(key in value for key in OPERATION_KEYS)


class RelationResolver:
    """Rewrites relation fields of a payload into operation trees.

    Pure: no I/O, never raises, never mutates its input. Tag validity is
    checked beforehand with :meth:`check_action_tags`.
    """

    def __init__(self, catalog: RelationCatalog):
        self.catalog = catalog

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(
        self,
        payload: dict[str, Any],
        entry: RelationCatalogEntry | str,
        ignored_actions: Iterable[str] = (),
    ) -> dict[str, Any]:
        """Resolve every relation field present in *payload*.

        Args:
            payload: Request body for one record
            entry: The owning model's catalog entry, or the model name
            ignored_actions: Tags whose items (or whole fields) are dropped

        Returns:
            A new dict; non-relation fields are copied as-is.
        """
        if isinstance(entry, str):
            entry = self.catalog.entry_for(entry)
        ignored = tuple(ignored_actions)

        result = copy.deepcopy(payload)
        if not entry:
            return strip_action_tags(result)

        for relation in (*entry.list, *entry.singular):
            if relation.name not in payload:
                continue
            value = payload[relation.name]
            if isinstance(value, dict) and value.get(ACTION_TAG) in ignored:
                del result[relation.name]
                continue
            result[relation.name] = self.resolve_field(value, relation, ignored)

        return strip_action_tags(result)

    def resolve_field(
        self,
        value: Any,
        relation: RelationField,
        ignored_actions: Iterable[str] = (),
    ) -> Any:
        """Resolve one relation field value into its operation tree."""
        ignored = tuple(ignored_actions)
        if value is None or is_operation_tree(value):
            return copy.deepcopy(value)
        if relation.is_list:
            if not isinstance(value, list):
                return copy.deepcopy(value)
            return self._resolve_list(value, relation, ignored)
        if not isinstance(value, dict):
            return copy.deepcopy(value)
        return self._resolve_single(value, relation, ignored)

    def check_action_tags(
        self,
        payload: dict[str, Any],
        model_name: str,
        ignored_actions: Iterable[str] = (),
    ) -> None:
        """Reject tags the resolver cannot honor.

        Raises:
            ValidationError: unknown tag value, a tag on the root record,
                a delete/disconnect item without identifier, or an update
                item with neither identifier nor unique field.
        """
        if isinstance(payload, dict) and ACTION_TAG in payload:
            raise ValidationError(
                f"Invalid usage of {ACTION_TAG}: it may only be used on relation fields",
                code="InvalidApiActionUsage",
            )
        self._check_nested(payload, model_name, tuple(ignored_actions), path="")

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _resolve_list(
        self,
        items: list[Any],
        relation: RelationField,
        ignored: tuple[str, ...],
    ) -> dict[str, Any]:
        pk = relation.target_primary_key
        create: list[Any] = []
        connect: list[Any] = []
        update: list[Any] = []
        disconnect: list[Any] = []
        delete_ids: list[Any] = []

        for item in items:
            if not isinstance(item, dict):
                continue
            tag = item.get(ACTION_TAG)
            if tag in ignored:
                continue

            if tag == "delete":
                if item.get(pk) is not None and item[pk] not in delete_ids:
                    delete_ids.append(item[pk])
            elif tag == "disconnect":
                if item.get(pk) is not None:
                    disconnect.append({pk: item[pk]})
            elif tag != "update" and self._is_connectable(item, relation):
                connect.append(strip_action_tags(item))
            else:
                match = self._match_for(item, relation, forced=tag == "update")
                if match is None:
                    create.append(self._resolve_nested(item, relation, ignored))
                else:
                    update.append(self._split_update(item, match, relation, ignored))

        buckets: dict[str, Any] = {}
        if create:
            buckets["create"] = create
        if connect:
            buckets["connect"] = connect
        if update:
            buckets["update"] = update
        if disconnect:
            buckets["disconnect"] = disconnect
        if delete_ids:
            buckets["deleteMany"] = {pk: {"in": delete_ids}}
        return buckets

    def _resolve_single(
        self,
        item: dict[str, Any],
        relation: RelationField,
        ignored: tuple[str, ...],
    ) -> dict[str, Any]:
        tag = item.get(ACTION_TAG)
        if tag == "delete":
            return {"delete": True}
        if tag == "disconnect":
            return {"disconnect": True}
        if tag != "update" and self._is_connectable(item, relation):
            return {"connect": strip_action_tags(item)}

        match = self._match_for(item, relation, forced=tag == "update")
        if match is None:
            return {"create": self._resolve_nested(item, relation, ignored)}
        return {"update": self._split_update(item, match, relation, ignored)}

    def _resolve_nested(
        self,
        item: dict[str, Any],
        relation: RelationField,
        ignored: tuple[str, ...],
    ) -> dict[str, Any]:
        data = {k: v for k, v in item.items() if k != ACTION_TAG}
        return self.resolve(data, self.catalog.entry_for(relation.target_model), ignored)

    def _split_update(
        self,
        item: dict[str, Any],
        match: dict[str, Any],
        relation: RelationField,
        ignored: tuple[str, ...],
    ) -> dict[str, Any]:
        data = {
            k: v for k, v in item.items() if k != ACTION_TAG and k not in match
        }
        return {
            "match": match,
            "data": self.resolve(data, self.catalog.entry_for(relation.target_model), ignored),
        }

    def _match_for(
        self,
        item: dict[str, Any],
        relation: RelationField,
        forced: bool,
    ) -> dict[str, Any] | None:
        """The identifying part of an item, or None when it has no identifier.

        Items explicitly tagged ``update`` may be matched by their first
        unique field instead of the identifier.
        """
        pk = relation.target_primary_key
        if item.get(pk) is not None:
            return {pk: item[pk]}
        if forced:
            for key, value in item.items():
                if key in relation.unique_field_names and isinstance(value, _SCALARS):
                    return {key: value}
        return None

    def _is_connectable(self, item: dict[str, Any], relation: RelationField) -> bool:
        tag = item.get(ACTION_TAG)
        if tag == "connect":
            return True
        if tag is not None:
            return False

        if len(item) != 1:
            return False
        (key, value), = item.items()
        if not isinstance(value, _SCALARS):
            return False
        return key == relation.target_primary_key or key in relation.unique_field_names

    # ------------------------------------------------------------------
    # Tag checks
    # ------------------------------------------------------------------

    def _check_nested(
        self,
        payload: dict[str, Any],
        model_name: str,
        ignored: tuple[str, ...],
        path: str,
    ) -> None:
        entry = self.catalog.entry_for(model_name)
        for relation in (*entry.list, *entry.singular):
            value = payload.get(relation.name)
            if value is None or is_operation_tree(value):
                continue
            items = value if isinstance(value, list) else [value]
            for index, item in enumerate(items):
                if not isinstance(item, dict):
                    continue
                where = f"{path}{relation.name}"
                if isinstance(value, list):
                    where = f"{where}[{index}]"
                self._check_item(item, relation, ignored, where)

    def _check_item(
        self,
        item: dict[str, Any],
        relation: RelationField,
        ignored: tuple[str, ...],
        where: str,
    ) -> None:
        tag = item.get(ACTION_TAG)
        if tag is not None and tag not in ACTION_TAGS:
            raise ValidationError(
                f"Unknown value '{tag}' for {ACTION_TAG}, available values are "
                f"{', '.join(ACTION_TAGS)}",
                details=[{"field": where, "message": f"unknown {ACTION_TAG} '{tag}'"}],
                code="InvalidApiAction",
            )
        if tag in ignored:
            return

        pk = relation.target_primary_key
        if tag in ("delete", "disconnect") and relation.is_list and item.get(pk) is None:
            raise ValidationError(
                f"Items tagged '{tag}' must include '{pk}'",
                details=[{"field": where, "message": f"missing '{pk}'"}],
                code="MissingIdentifier",
            )
        if tag == "update" and self._match_for(item, relation, forced=True) is None:
            raise ValidationError(
                "No unique fields to be used to match the record to update",
                details=[{"field": where, "message": "no identifier or unique field"}],
                code="NoFieldToMatchUpdate",
            )

        self._check_nested(item, relation.target_model, ignored, path=f"{where}.")
