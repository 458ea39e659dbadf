"""Model relationship catalog.

The catalog is built once from resolved model metadata and handed to the
components that need it (composer, handlers, resolver). It is read-only after
construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Mapping

from crudforge.metadata.loader import MetadataLoader, ModelDefinition


@dataclass(frozen=True)
class RelationField:
    """One relationship attribute on a model.

    Attributes:
        name: Attribute name on the owning model
        target_model: Name of the related model
        is_unique: True when at most one owner may reference a given target
        unique_field_names: Unique (non-identifier) fields of the target
        target_primary_key: Identifier field of the target
        is_list: True for list relations, False for singular ones
    """

    name: str
    target_model: str
    is_unique: bool = False
    unique_field_names: tuple[str, ...] = ()
    target_primary_key: str = "id"
    is_list: bool = False


@dataclass(frozen=True)
class RelationCatalogEntry:
    singular: tuple[RelationField, ...] = ()
    list: tuple[RelationField, ...] = ()

    def get(self, name: str) -> RelationField | None:
        for relation in (*self.singular, *self.list):
            if relation.name == name:
                return relation
        return None

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(r.name for r in (*self.singular, *self.list))

    def __bool__(self) -> bool:
        return bool(self.singular or self.list)


EMPTY_ENTRY = RelationCatalogEntry()


class RelationCatalog(Mapping[str, RelationCatalogEntry]):
    """Read-only lookup from model name to its relation entry."""

    def __init__(self, entries: Mapping[str, RelationCatalogEntry]):
        self._entries = MappingProxyType(dict(entries))

    @classmethod
    def from_loader(cls, loader: MetadataLoader) -> RelationCatalog:
        return cls.from_models(loader.models.values())

    @classmethod
    def from_models(cls, models) -> RelationCatalog:
        by_name: dict[str, ModelDefinition] = {m.name: m for m in models}
        entries: dict[str, RelationCatalogEntry] = {}

        for model in by_name.values():
            singular: list[RelationField] = []
            many: list[RelationField] = []
            for relation in model.relations:
                target = by_name.get(relation.model)
                relation_field = RelationField(
                    name=relation.name,
                    target_model=relation.model,
                    is_unique=relation.unique,
                    unique_field_names=tuple(target.unique_field_names) if target else (),
                    target_primary_key=target.primary_key if target else "id",
                    is_list=relation.is_list,
                )
                (many if relation.is_list else singular).append(relation_field)
            entries[model.name] = RelationCatalogEntry(
                singular=tuple(singular), list=tuple(many)
            )

        return cls(entries)

    def __getitem__(self, model_name: str) -> RelationCatalogEntry:
        return self._entries[model_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def entry_for(self, model_name: str) -> RelationCatalogEntry:
        """The model's entry, or an empty one for models without relations."""
        return self._entries.get(model_name, EMPTY_ENTRY)
