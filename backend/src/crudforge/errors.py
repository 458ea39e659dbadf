"""Error taxonomy and outcome types.

Every failure a pipeline stage can surface to a client is an ``AppError``
subclass carrying its HTTP status and a machine-readable code. Pipelines
convert these into JSON responses at a single boundary (see
``crudforge.pipeline.types.Pipeline.run``).

Tooling flows that need to distinguish "tell the user and stop" from "this is
broken" return ``Recoverable`` / ``Fatal`` outcomes instead of raising.
"""

from dataclasses import dataclass, field
from typing import Any


class AppError(Exception):
    """Base class for errors that map to an HTTP response.

    Attributes:
        message: Human-readable message returned to the client
        status_code: HTTP status code
        code: Machine-readable error code (e.g., "LoginRequired")
        meta: Optional extra payload included in the response body
    """

    status_code: int = 500
    code: str = "Unknown"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message or "An error occurred, try again!"
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.meta = meta

    @property
    def status(self) -> str:
        return "fail" if str(self.status_code).startswith("4") else "error"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "status": self.status,
            "message": self.message,
            "code": self.code,
        }
        if self.meta:
            result["meta"] = self.meta
        return result


class AuthenticationError(AppError):
    """Missing, invalid, expired or stale credential; unverified identity."""

    status_code = 401
    code = "AuthenticationFailed"


class AuthorizationError(AppError):
    """The identity's roles do not grant the attempted action."""

    status_code = 403
    code = "NotEnoughPermissions"


class NotFoundError(AppError):
    status_code = 404
    code = "NotFound"


class ValidationError(AppError):
    """A request body was rejected by the active validator backend.

    Attributes:
        details: Per-field problems, each ``{"field": ..., "message": ...}``
    """

    status_code = 400
    code = "ValidationError"

    def __init__(
        self,
        message: str,
        details: list[dict[str, Any]] | None = None,
        code: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, status_code=status_code, code=code)
        self.details = details or []

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["details"] = self.details
        return result


class EnvelopeError(AppError):
    """No stage attached a status or body to the request context."""

    status_code = 500
    code = "NoResponseAttached"

    def __init__(self, message: str = "No status or data attached to the response"):
        super().__init__(message)


@dataclass(frozen=True)
class ConflictWarning:
    """A write would change a previously stored role set.

    Not an error: tooling asks for confirmation before applying it.
    """

    resource: str
    action: str
    previous: tuple[str, ...]
    proposed: tuple[str, ...]

    def describe(self) -> str:
        return (
            f"{self.resource}.{self.action}: roles "
            f"[{', '.join(self.previous)}] -> [{', '.join(self.proposed)}]"
        )


@dataclass(frozen=True)
class Recoverable:
    """An outcome that stops the flow with a message meant for the user."""

    message: str
    hints: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Fatal:
    """An outcome caused by an unexpected failure."""

    cause: BaseException

    @property
    def message(self) -> str:
        return f"{type(self.cause).__name__}: {self.cause}"
