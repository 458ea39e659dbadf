"""DataEngine Protocol: the interface handlers use to reach the store.

Write methods accept payloads whose relation fields are operation trees as
produced by :class:`crudforge.relations.resolver.RelationResolver`, mapped 1:1
onto create / connect / update / disconnect / deleteMany primitives.

``options`` dicts carry the query options of the request: ``select``,
``omit``, ``include``, ``where``, ``orderBy``, ``skip`` and ``take``.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DataEngine(Protocol):
    """Interface all data engines must implement."""

    def create_all(self) -> None: ...

    def dispose(self) -> None: ...

    def create(
        self, model: str, data: dict[str, Any], options: dict[str, Any] | None = None
    ) -> dict[str, Any]: ...

    def create_many(self, model: str, items: list[dict[str, Any]]) -> int: ...

    def find_many(
        self, model: str, options: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]: ...

    def count(self, model: str, where: dict[str, Any] | None = None) -> int: ...

    def find_one(
        self,
        model: str,
        where: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None: ...

    def find_raw(self, model: str, where: dict[str, Any]) -> dict[str, Any] | None: ...

    def update(
        self,
        model: str,
        where: dict[str, Any],
        data: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None: ...

    def update_many(
        self, model: str, where: dict[str, Any], data: dict[str, Any]
    ) -> int: ...

    def delete(self, model: str, where: dict[str, Any]) -> dict[str, Any] | None: ...

    def delete_many(self, model: str, where: dict[str, Any]) -> int: ...
