"""Auth surface handlers: login, logout, signup, profile and password."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from crudforge.auth.jwt_service import JWTService
from crudforge.auth.password import PasswordService
from crudforge.auth.types import Identity
from crudforge.config import AuthConfig
from crudforge.errors import AuthenticationError, NotFoundError, ValidationError
from crudforge.handlers.crud import require_object
from crudforge.metadata.loader import ModelDefinition
from crudforge.persistence.adapter import DataEngine
from crudforge.pipeline.types import RequestContext
from crudforge.relations.resolver import CREATE_IGNORED_ACTIONS, RelationResolver

logger = logging.getLogger(__name__)

# Fields a client may never set on its own account
PROTECTED_FIELDS = (
    "role",
    "roles",
    "isSuperUser",
    "isStaff",
    "isActive",
    "isVerified",
    "passwordChangedAt",
    "deletedSelfAccountAt",
)


def _now() -> str:
    return datetime.now(UTC).isoformat()


class AuthResource:
    """Implements AuthActions against the user model."""

    def __init__(
        self,
        user_model: ModelDefinition,
        engine: DataEngine,
        resolver: RelationResolver,
        jwt_service: JWTService,
        password_service: PasswordService,
        config: AuthConfig,
    ):
        self.user_model = user_model
        self.engine = engine
        self.resolver = resolver
        self.jwt_service = jwt_service
        self.password_service = password_service
        self.config = config

    def _me(self, ctx: RequestContext) -> dict[str, Any]:
        identity: Identity = ctx.identity
        return {self.user_model.primary_key: identity.id}

    def _strip_protected(self, body: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in body.items() if k not in PROTECTED_FIELDS}

    def _cookie_options(self, max_age: int) -> dict[str, Any]:
        return {
            "max_age": max_age,
            "httponly": True,
            "secure": self.config.cookie_secure,
            "samesite": self.config.cookie_same_site,
        }

    def _check_strength(self, password: Any, field: str) -> None:
        if not isinstance(password, str) or not self.password_service.is_strong(
            password, self.config.password_regex
        ):
            raise ValidationError(
                self.config.password_message,
                details=[{"field": field, "message": self.config.password_message}],
                code="WeakPassword",
            )

    async def get_me(self, ctx: RequestContext) -> None:
        record = self.engine.find_one(self.user_model.name, self._me(ctx), ctx.query_options)
        if record is None:
            raise NotFoundError("User not found")
        ctx.respond(200, {"data": record})

    async def update_me(self, ctx: RequestContext) -> None:
        body = require_object(ctx.request_body)
        if "password" in body:
            raise ValidationError(
                "In order to update password use the update-password endpoint",
                details=[{"field": "password", "message": "not allowed here"}],
                code="PasswordUpdateNotAllowed",
            )
        body = self._strip_protected(body)
        self.resolver.check_action_tags(body, self.user_model.name)
        data = self.resolver.resolve(body, self.user_model.name)
        record = self.engine.update(self.user_model.name, self._me(ctx), data, ctx.query_options)
        if record is None:
            raise NotFoundError("User not found")
        ctx.respond(200, {"data": record})

    async def delete_me(self, ctx: RequestContext) -> None:
        if self.user_model.get_field("deletedSelfAccountAt") is None:
            self.engine.delete(self.user_model.name, self._me(ctx))
        else:
            self.engine.update(
                self.user_model.name, self._me(ctx), {"deletedSelfAccountAt": _now()}
            )
        logger.info("User %s deleted their account", ctx.identity.id)
        ctx.respond(200, {"message": "Account deleted successfully"})

    async def login(self, ctx: RequestContext) -> None:
        body = require_object(ctx.request_body)
        field = self.config.username_field
        username = body.get(field)
        password = body.get("password")
        if not username or not password:
            raise ValidationError(
                f"Please provide both {field} and password",
                details=[
                    {"field": name, "message": "required"}
                    for name, value in ((field, username), ("password", password))
                    if not value
                ],
                code="MissingCredentials",
            )

        record = self.engine.find_raw(self.user_model.name, {field: username})
        if record is None or not self.password_service.verify(
            str(password), record.get("password") or ""
        ):
            logger.info("Failed login for %s=%s", field, username)
            raise AuthenticationError(
                f"Incorrect {field} or password", code="IncorrectCredentials"
            )

        identity = Identity.from_record(record, primary_key=self.user_model.primary_key)
        if not identity.is_active:
            raise AuthenticationError(
                "This account is no longer active", code="AccountInactive"
            )

        token = self.jwt_service.sign(identity.id)
        mode = self.config.send_access_token_through
        if mode in ("cookie-only", "both"):
            ctx.set_cookie(
                self.config.cookie_name, token, **self._cookie_options(self.jwt_service.expires_in)
            )
        if mode in ("response-only", "both"):
            ctx.respond(200, {"accessToken": token})
        else:
            ctx.respond(200)

    async def logout(self, ctx: RequestContext) -> None:
        ctx.set_cookie(self.config.cookie_name, "no-token", **self._cookie_options(5))
        ctx.respond(204)

    async def signup(self, ctx: RequestContext) -> None:
        body = self._strip_protected(require_object(ctx.request_body))
        if "password" not in body:
            raise ValidationError(
                "Password is required",
                details=[{"field": "password", "message": "required"}],
                code="MissingCredentials",
            )
        self._check_strength(body["password"], "password")
        self.resolver.check_action_tags(body, self.user_model.name, CREATE_IGNORED_ACTIONS)
        data = self.resolver.resolve(body, self.user_model.name, CREATE_IGNORED_ACTIONS)
        record = self.engine.create(self.user_model.name, data, ctx.query_options)
        ctx.respond(201, {"data": record})

    async def update_password(self, ctx: RequestContext) -> None:
        body = require_object(ctx.request_body)
        current = body.get("currentPassword")
        new = body.get("newPassword")
        if not current or not new:
            raise ValidationError(
                "currentPassword and newPassword are required",
                details=[
                    {"field": name, "message": "required"}
                    for name, value in (("currentPassword", current), ("newPassword", new))
                    if not value
                ],
                code="MissingCredentials",
            )

        record = self.engine.find_raw(self.user_model.name, self._me(ctx))
        if record is None:
            raise NotFoundError("User not found")
        if not self.password_service.verify(str(current), record.get("password") or ""):
            raise ValidationError(
                "Current password is incorrect",
                details=[{"field": "currentPassword", "message": "incorrect"}],
                code="IncorrectPassword",
            )
        self._check_strength(new, "newPassword")

        data: dict[str, Any] = {"password": new}
        if self.user_model.get_field("passwordChangedAt") is not None:
            data["passwordChangedAt"] = _now()
        self.engine.update(self.user_model.name, self._me(ctx), data)
        ctx.respond(200, {"status": "success", "message": "Password updated successfully!"})
