"""JSON Schema and pydantic validator backends."""

from __future__ import annotations

import logging
from typing import Any

import pydantic
from jsonschema import Draft202012Validator

from crudforge.errors import ValidationError

logger = logging.getLogger(__name__)


def _located(details: list[dict[str, Any]], index: int) -> list[dict[str, Any]]:
    return [
        {**d, "field": f"[{index}].{d['field']}" if d["field"] else f"[{index}]"}
        for d in details
    ]


class JsonSchemaBackend:
    """Validates bodies against JSON Schema documents (dicts).

    Bodies are returned unchanged; JSON Schema does not coerce.
    """

    name = "jsonschema"

    def __init__(self):
        self._validators: dict[int, Draft202012Validator] = {}

    def accepts(self, artifact: Any) -> bool:
        return isinstance(artifact, dict)

    def _validator(self, schema: dict[str, Any]) -> Draft202012Validator:
        key = id(schema)
        if key not in self._validators:
            Draft202012Validator.check_schema(schema)
            self._validators[key] = Draft202012Validator(schema)
        return self._validators[key]

    def _details(self, schema: dict[str, Any], body: Any) -> list[dict[str, Any]]:
        details = []
        for error in sorted(self._validator(schema).iter_errors(body), key=lambda e: list(e.path)):
            field = ".".join(str(p) for p in error.absolute_path)
            if error.validator == "required" and not field:
                missing = [name for name in error.validator_value if name not in (body or {})]
                field = missing[0] if missing else ""
            details.append({"field": field, "message": error.message})
        return details

    def validate(self, artifact: dict[str, Any], body: Any) -> Any:
        if isinstance(body, list) and artifact.get("type") != "array":
            details = []
            for index, item in enumerate(body):
                details.extend(_located(self._details(artifact, item), index))
        else:
            details = self._details(artifact, body)

        if details:
            raise ValidationError("Invalid request body", details=details)
        return body


class PydanticBackend:
    """Validates bodies with pydantic models.

    The normalized body is the model dump of fields the client actually sent.
    """

    name = "pydantic"

    def accepts(self, artifact: Any) -> bool:
        return isinstance(artifact, type) and issubclass(artifact, pydantic.BaseModel)

    def _one(self, model: type[pydantic.BaseModel], body: Any) -> dict[str, Any]:
        try:
            instance = model.model_validate(body)
        except pydantic.ValidationError as exc:
            details = [
                {
                    "field": ".".join(str(p) for p in err["loc"]),
                    "message": err["msg"],
                }
                for err in exc.errors()
            ]
            raise ValidationError("Invalid request body", details=details) from exc
        return instance.model_dump(mode="json", exclude_unset=True)

    def validate(self, artifact: type[pydantic.BaseModel], body: Any) -> Any:
        if not isinstance(body, list):
            return self._one(artifact, body)

        results = []
        details = []
        for index, item in enumerate(body):
            try:
                results.append(self._one(artifact, item))
            except ValidationError as exc:
                details.extend(_located(exc.details, index))
        if details:
            raise ValidationError("Invalid request body", details=details)
        return results


BACKENDS = {
    JsonSchemaBackend.name: JsonSchemaBackend,
    PydanticBackend.name: PydanticBackend,
}


def get_backend(name: str):
    """Instantiate the backend configured as ``validation.resolver``.

    Raises:
        ValueError: For unknown backend names.
    """
    try:
        backend = BACKENDS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown validation resolver '{name}'. Expected one of: {', '.join(BACKENDS)}"
        ) from None
    logger.debug("Using %s validator backend", name)
    return backend
