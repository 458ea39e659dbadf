"""Validator backend protocol.

A backend turns a raw request body into a normalized one, or rejects it with
:class:`crudforge.errors.ValidationError` carrying per-field details. Which
backend is active is a static configuration choice (``validation.resolver``).
"""

from typing import Any, Protocol, runtime_checkable

# Body-validating actions an artifact can be registered for
ARTIFACT_ACTIONS = (
    "create",
    "update",
    "createMany",
    "updateMany",
    "login",
    "signup",
    "updateMe",
    "updatePassword",
)

# Route action -> artifact action
ARTIFACT_FOR_ACTION = {
    "createOne": "create",
    "updateOne": "update",
    "createMany": "createMany",
    "updateMany": "updateMany",
    "login": "login",
    "signup": "signup",
    "updateMe": "updateMe",
    "updatePassword": "updatePassword",
}


@runtime_checkable
class ValidatorBackend(Protocol):
    """Interface all validator backends must implement."""

    name: str

    def accepts(self, artifact: Any) -> bool:
        """True when *artifact* is something this backend can validate with."""
        ...

    def validate(self, artifact: Any, body: Any) -> Any:
        """Return the normalized body or raise ValidationError."""
        ...
