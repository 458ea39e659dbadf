"""Relation catalog and nested-write resolution."""

from crudforge.relations.catalog import RelationCatalog, RelationCatalogEntry, RelationField
from crudforge.relations.resolver import RelationResolver

__all__ = ["RelationCatalog", "RelationCatalogEntry", "RelationField", "RelationResolver"]
