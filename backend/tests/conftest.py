"""Shared fixtures: a small blog schema loaded without touching disk."""

import copy

import pytest

from crudforge.auth.password import PasswordService
from crudforge.config import AppConfig, AuthConfig
from crudforge.metadata.loader import MetadataLoader
from crudforge.persistence.sqlalchemy_engine import SQLAlchemyEngine
from crudforge.relations.catalog import RelationCatalog
from crudforge.relations.resolver import RelationResolver

SECRET = "test-secret-key-with-enough-length-for-hs256"

BLOG_MODELS = [
    {
        "model": "User",
        "fields": [
            {"name": "email", "type": "string", "unique": True, "required": True},
            {"name": "name", "type": "string"},
            {"name": "password", "type": "string"},
            {"name": "role", "type": "string", "default": "User"},
            {"name": "isSuperUser", "type": "boolean", "default": False},
            {"name": "isActive", "type": "boolean", "default": True},
            {"name": "isVerified", "type": "boolean", "default": False},
            {"name": "passwordChangedAt", "type": "datetime"},
            {"name": "deletedSelfAccountAt", "type": "datetime"},
        ],
        "auth": {"accessControl": ["Admin"]},
    },
    {
        "model": "Category",
        "pluralName": "categories",
        "fields": [{"name": "name", "type": "string", "unique": True}],
        "auth": {"authentication": False},
    },
    {
        "model": "Tag",
        "fields": [{"name": "name", "type": "string", "unique": True}],
        "auth": {"authentication": False},
    },
    {
        "model": "Post",
        "fields": [
            {"name": "title", "type": "string", "required": True},
            {"name": "body", "type": "text"},
            {"name": "status", "type": "string", "default": "draft"},
            {"name": "views", "type": "integer", "default": 0},
        ],
        "relations": [
            {"name": "category", "model": "Category"},
            {"name": "tags", "model": "Tag", "kind": "many", "through": "post_tags"},
            {"name": "comments", "model": "Comment", "kind": "many", "foreignKey": "postId"},
        ],
        "auth": {
            "authentication": {"view": False},
            "accessControl": {
                "view": ["User", "Admin"],
                "create": ["User", "Admin"],
                "update": ["Admin"],
                "delete": ["Admin"],
            },
        },
    },
    {
        "model": "Comment",
        "fields": [{"name": "body", "type": "text"}],
        "relations": [{"name": "post", "model": "Post", "foreignKey": "postId"}],
        "auth": {"authentication": False},
    },
]


def make_loader(documents=None) -> MetadataLoader:
    loader = MetadataLoader()
    loader.load_definitions(copy.deepcopy(documents or BLOG_MODELS))
    return loader


def make_config(auth_enabled: bool = False, **auth_overrides) -> AppConfig:
    auth = AuthConfig(
        enabled=auth_enabled,
        secret_key=SECRET,
        bcrypt_rounds=4,
        **auth_overrides,
    )
    return AppConfig(auth=auth)


@pytest.fixture
def loader():
    return make_loader()


@pytest.fixture
def catalog(loader):
    return RelationCatalog.from_loader(loader)


@pytest.fixture
def resolver(catalog):
    return RelationResolver(catalog)


@pytest.fixture
def password_service():
    return PasswordService(rounds=4)


@pytest.fixture
def engine(loader, password_service):
    """In-memory engine with every table created."""
    db = SQLAlchemyEngine(
        "sqlite:///:memory:", loader, password_service=password_service, user_model="User"
    )
    db.create_all()
    yield db
    db.dispose()
