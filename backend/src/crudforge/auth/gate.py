"""Authentication and access-control pipeline stages.

The auth gate:
1. Extracts a bearer token from the Authorization header, or the access
   token cookie (the logout marker value ``no-token`` counts as absent)
2. Verifies signature and expiry
3. Loads the user record by primary key
4. Rejects stale tokens issued before the last password change (except on logout)
5. Rejects inactive or self-deleted accounts, and unverified ones when
   verification is required
6. Attaches an :class:`Identity` to the request context

The access stage checks the identity against a resource's access-control table.
Both raise instead of continuing; the pipeline boundary turns the error into
a response and the handler never runs.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from starlette.requests import Request

from crudforge.auth.jwt_service import InvalidTokenError, JWTService, TokenExpiredError
from crudforge.auth.permissions import is_allowed
from crudforge.auth.types import Identity
from crudforge.config import AuthConfig
from crudforge.errors import AuthenticationError, AuthorizationError
from crudforge.metadata.loader import AuthPolicy, ModelDefinition
from crudforge.persistence.adapter import DataEngine
from crudforge.pipeline.types import RequestContext, StageFn

logger = logging.getLogger(__name__)

LOGGED_OUT_TOKEN = "no-token"

# Actions allowed to present a token issued before the last password change
STALE_TOKEN_ACTIONS = ("logout",)


def _timestamp(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return int(value.timestamp())
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(datetime.fromisoformat(str(value)).timestamp())
    except ValueError:
        return None


class AuthGate:
    """Builds the auth and access stages for composed pipelines."""

    def __init__(
        self,
        engine: DataEngine,
        jwt_service: JWTService,
        config: AuthConfig,
        user_model: ModelDefinition,
    ):
        self.engine = engine
        self.jwt_service = jwt_service
        self.config = config
        self.user_model = user_model

    def extract_token(self, request: Request | None) -> str | None:
        if request is None:
            return None
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
            if token:
                return token
        token = request.cookies.get(self.config.cookie_name)
        if token and token != LOGGED_OUT_TOKEN:
            return token
        return None

    def resolve_identity(self, token: str, action: str) -> Identity:
        """Turn a token into an Identity or raise AuthenticationError."""
        try:
            claims = self.jwt_service.decode(token)
        except TokenExpiredError:
            raise AuthenticationError(
                "Your auth token has expired, please log in again",
                code="ExpiredAuthToken",
            )
        except InvalidTokenError:
            raise AuthenticationError("Invalid auth token", code="InvalidAuthToken")

        pk = self.user_model.primary_key
        user_id = claims.user_id
        if self.user_model.get_field(pk).type == "integer" and str(user_id).isdigit():
            user_id = int(user_id)
        record = self.engine.find_raw(self.user_model.name, {pk: user_id})
        if record is None:
            raise AuthenticationError(
                "The user belonging to this token no longer exists",
                code="UserNoLongerExists",
            )

        if action not in STALE_TOKEN_ACTIONS:
            changed_at = _timestamp(record.get("passwordChangedAt"))
            if changed_at is not None and claims.iat < changed_at:
                raise AuthenticationError(
                    "User recently changed password! Please log in again",
                    code="PasswordChanged",
                )

        identity = Identity.from_record(
            record, primary_key=pk, hidden_fields=tuple(self.user_model.hidden_field_names)
        )
        if not identity.is_active:
            raise AuthenticationError(
                "This account is no longer active", code="AccountInactive"
            )
        if self.config.require_verification and not identity.is_verified:
            raise AuthenticationError(
                "You need to verify your account to continue",
                status_code=423,
                code="VerificationRequired",
            )
        return identity

    async def authenticate(self, ctx: RequestContext):
        """Pipeline stage: attach the request's Identity."""
        token = self.extract_token(ctx.request)
        if token is None:
            logger.info("Rejected %s.%s: no credential", ctx.model, ctx.action)
            raise AuthenticationError(
                "You are not logged in! Please log in to get access",
                code="LoginRequired",
            )
        try:
            ctx.identity = self.resolve_identity(token, ctx.action)
        except AuthenticationError as exc:
            logger.info("Rejected %s.%s: %s", ctx.model, ctx.action, exc.code)
            raise
        return None


def access_stage(
    resource: str,
    policy: AuthPolicy,
    access_action: str,
    public_actions: list[str] | tuple[str, ...] = (),
) -> StageFn:
    """Pipeline stage checking the identity against *resource*'s table.

    A no-op when *policy* declares no table or the request carries no
    identity (public actions and disabled authentication).
    """
    public_actions = list(public_actions)

    async def authorize(ctx: RequestContext):
        if policy.access_control is None or ctx.identity is None:
            return None
        if not is_allowed(ctx.identity, resource, policy, access_action, public_actions):
            logger.info(
                "Denied %s on %s to roles %s",
                access_action,
                resource,
                sorted(ctx.identity.roles),
            )
            raise AuthorizationError("You do not have permission to perform this action")
        return None

    return authorize
