"""Load and resolve model metadata from YAML files."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from crudforge.core.naming import camel_case, route_name

FIELD_TYPES = ("id", "string", "text", "integer", "number", "boolean", "datetime", "json")

# Fields never returned to clients regardless of query options
ALWAYS_HIDDEN_FIELDS = ("password",)


@dataclass
class FieldDefinition:
    name: str
    type: str = "string"
    primary_key: bool = False
    unique: bool = False
    required: bool = False
    hidden: bool = False
    default: Any = None


@dataclass
class RelationDefinition:
    """A declared association from one model to another.

    Attributes:
        name: Attribute name on the owning model (e.g., "comments")
        model: Target model name (e.g., "Comment")
        kind: "one" (foreign key on the owner) or "many" (list relation)
        foreign_key: For "one", the owner column holding the target's id.
            For "many" without ``through``, the target column holding the
            owner's id.
        through: Join table name for many-to-many relations
        unique: True when at most one owner may point to the same target
    """

    name: str
    model: str
    kind: str = "one"
    foreign_key: str | None = None
    through: str | None = None
    unique: bool = False

    @property
    def is_list(self) -> bool:
        return self.kind == "many"

    @property
    def is_many_to_many(self) -> bool:
        return self.kind == "many" and self.through is not None


@dataclass
class AuthPolicy:
    """Per-model authentication and access-control declarations.

    Attributes:
        authentication: True/False for the whole model, or a mapping of
            access action ("create", "view", "update", "delete") to bool.
        access_control: None when no table is declared; otherwise either a
            list of roles allowed for every action or a mapping of access
            action to allowed roles.
    """

    authentication: bool | dict[str, bool] = True
    access_control: list[str] | dict[str, list[str]] | None = None

    def requires_authentication(self, access_action: str) -> bool:
        if isinstance(self.authentication, dict):
            return self.authentication.get(access_action, True)
        return bool(self.authentication)


@dataclass
class RouterConfig:
    disable: bool | dict[str, bool] = False

    def is_disabled(self, action: str) -> bool:
        if self.disable is True:
            return True
        if isinstance(self.disable, dict):
            return self.disable.get(action) is True
        return False


@dataclass
class ModelDefinition:
    name: str
    plural_name: str
    primary_key: str
    fields: list[FieldDefinition]
    relations: list[RelationDefinition] = field(default_factory=list)
    auth: AuthPolicy = field(default_factory=AuthPolicy)
    query_options: dict[str, Any] = field(default_factory=dict)
    router: RouterConfig = field(default_factory=RouterConfig)
    table_name: str = ""

    def __post_init__(self):
        if not self.table_name:
            self.table_name = route_name(self.name).replace("-", "_")

    @property
    def route_name(self) -> str:
        return route_name(self.name)

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def unique_field_names(self) -> list[str]:
        return [f.name for f in self.fields if f.unique and not f.primary_key]

    @property
    def hidden_field_names(self) -> list[str]:
        return [
            f.name for f in self.fields if f.hidden or f.name in ALWAYS_HIDDEN_FIELDS
        ]

    def get_field(self, name: str) -> FieldDefinition | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_relation(self, name: str) -> RelationDefinition | None:
        for r in self.relations:
            if r.name == name:
                return r
        return None


class MetadataLoader:
    """Loads model definitions from ``<metadata_path>/models/*.yaml``."""

    def __init__(self, metadata_path: Path | None = None):
        self.metadata_path = metadata_path
        self.models: dict[str, ModelDefinition] = {}

    def load_all(self) -> None:
        """Load every model file and link relations."""
        if self.metadata_path is None:
            return
        models_path = self.metadata_path / "models"
        if not models_path.exists():
            return

        documents = []
        for yaml_file in sorted(models_path.glob("*.yaml")):
            with open(yaml_file) as f:
                data = yaml.safe_load(f)
                if data and "model" in data:
                    documents.append(data)
        self.load_definitions(documents)

    def load_definitions(self, documents: list[dict[str, Any]]) -> None:
        """Resolve already-parsed model documents (used by load_all and tests)."""
        for data in documents:
            model = self._resolve_model(data)
            self.models[model.name] = model
        self._link_relations()

    def _resolve_model(self, data: dict) -> ModelDefinition:
        name = data["model"]
        fields = [self._resolve_field(f) for f in data.get("fields", [])]

        primary_key = "id"
        for f in fields:
            if f.primary_key:
                primary_key = f.name
                break
        else:
            # Every model gets a string id, implicit unless declared
            existing = next((f for f in fields if f.name == "id"), None)
            if existing is not None:
                existing.primary_key = True
            else:
                fields.insert(0, FieldDefinition(name="id", type="id", primary_key=True))

        relations = [self._resolve_relation(name, r) for r in data.get("relations", [])]

        # Singular relations carry their foreign key on this model
        declared = {f.name for f in fields}
        for relation in relations:
            if relation.kind == "one" and relation.foreign_key not in declared:
                fields.append(
                    FieldDefinition(
                        name=relation.foreign_key,
                        type="string",
                        unique=relation.unique,
                    )
                )
                declared.add(relation.foreign_key)

        plural_name = data.get("pluralName") or route_name(name)

        return ModelDefinition(
            name=name,
            plural_name=plural_name,
            primary_key=primary_key,
            fields=fields,
            relations=relations,
            auth=self._resolve_auth(data.get("auth")),
            query_options=data.get("queryOptions") or {},
            router=RouterConfig(disable=(data.get("router") or {}).get("disable", False)),
            table_name=data.get("tableName", ""),
        )

    def _resolve_field(self, data: dict) -> FieldDefinition:
        field_type = data.get("type", "string")
        if field_type not in FIELD_TYPES:
            raise ValueError(
                f"Field '{data.get('name')}' has unknown type '{field_type}'. "
                f"Expected one of: {', '.join(FIELD_TYPES)}"
            )
        return FieldDefinition(
            name=data["name"],
            type=field_type,
            primary_key=data.get("primaryKey", False),
            unique=data.get("unique", False),
            required=data.get("required", False),
            hidden=data.get("hidden", False),
            default=data.get("default"),
        )

    def _resolve_relation(self, owner: str, data: dict) -> RelationDefinition:
        kind = data.get("kind", "one")
        if kind not in ("one", "many"):
            raise ValueError(
                f"Relation '{owner}.{data.get('name')}' has unknown kind '{kind}'"
            )

        name = data["name"]
        foreign_key = data.get("foreignKey")
        through = data.get("through")
        if kind == "one" and not foreign_key:
            foreign_key = f"{name}Id"
        elif kind == "many" and not through and not foreign_key:
            foreign_key = f"{camel_case(owner[:1].lower() + owner[1:])}Id"

        return RelationDefinition(
            name=name,
            model=data["model"],
            kind=kind,
            foreign_key=foreign_key,
            through=through,
            unique=data.get("unique", False),
        )

    def _resolve_auth(self, data: dict | None) -> AuthPolicy:
        if not data:
            return AuthPolicy()
        return AuthPolicy(
            authentication=data.get("authentication", True),
            access_control=data.get("accessControl"),
        )

    def _link_relations(self) -> None:
        """Check relation targets and add list-relation foreign keys to targets."""
        for model in self.models.values():
            for relation in model.relations:
                target = self.models.get(relation.model)
                if target is None:
                    raise ValueError(
                        f"Relation '{model.name}.{relation.name}' targets unknown "
                        f"model '{relation.model}'"
                    )
                if relation.is_list and not relation.is_many_to_many:
                    if target.get_field(relation.foreign_key) is None:
                        target.fields.append(
                            FieldDefinition(name=relation.foreign_key, type="string")
                        )

    def get_model(self, name: str) -> ModelDefinition | None:
        """Get a resolved model by name."""
        return self.models.get(name)

    def list_models(self) -> list[str]:
        """List all model names."""
        return list(self.models.keys())
