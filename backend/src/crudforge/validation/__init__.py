"""Request-body validation.

Usage:
    from crudforge.validation import get_backend

    backend = get_backend("jsonschema")
    body = backend.validate({"type": "object", "required": ["title"]}, body)
"""

from crudforge.validation.backends import JsonSchemaBackend, PydanticBackend, get_backend
from crudforge.validation.types import ARTIFACT_ACTIONS, ValidatorBackend

__all__ = [
    "ARTIFACT_ACTIONS",
    "JsonSchemaBackend",
    "PydanticBackend",
    "ValidatorBackend",
    "get_backend",
]
