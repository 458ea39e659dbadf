"""Tests for the authentication gate and the access stage."""

import time
from datetime import UTC, datetime

import pytest
from starlette.requests import Request

from conftest import SECRET, make_config
from crudforge.auth.gate import AuthGate, access_stage
from crudforge.auth.jwt_service import JWTService
from crudforge.auth.types import Identity
from crudforge.components import ComponentRegistry
from crudforge.errors import AuthenticationError, AuthorizationError
from crudforge.pipeline.composer import PipelineComposer
from crudforge.pipeline.types import RequestContext
from crudforge.validation.backends import JsonSchemaBackend


def make_request(token=None, cookie=None, body=b"") -> Request:
    headers = [(b"content-type", b"application/json")]
    if token is not None:
        headers.append((b"authorization", f"Bearer {token}".encode()))
    if cookie is not None:
        headers.append((b"cookie", cookie.encode()))

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(
        {"type": "http", "method": "POST", "path": "/api/posts", "headers": headers, "query_string": b""},
        receive,
    )


def make_ctx(request=None, action="createOne", model="Post") -> RequestContext:
    return RequestContext(request=request, model=model, action=action)


@pytest.fixture
def jwt_service():
    return JWTService(SECRET, expires_in=3600)


@pytest.fixture
def gate(engine, loader, jwt_service):
    config = make_config(auth_enabled=True)
    return AuthGate(engine, jwt_service, config.auth, loader.models["User"])


@pytest.fixture
def user(engine):
    return engine.create(
        "User",
        {"email": "ada@example.com", "password": "Secret123", "role": "User", "isVerified": True},
    )


# =============================================================================
# Expired credential never reaches the handler
# =============================================================================


class CountingResource:
    def __init__(self):
        self.calls = 0

    async def create_one(self, ctx):
        self.calls += 1
        ctx.respond(201, {"data": {}})

    async def create_many(self, ctx):
        self.calls += 1
        ctx.respond(201, {"results": 0, "data": {"count": 0}})


class TestExpiredCredential:
    @pytest.mark.asyncio
    async def test_expired_token_is_401_and_handler_not_called(self, loader, gate, jwt_service):
        resource = CountingResource()
        composer = PipelineComposer(
            loader,
            ComponentRegistry(),
            make_config(auth_enabled=True),
            gate,
            JsonSchemaBackend(),
            {"Post": resource},
        )
        pipeline = composer.compose("Post", "createOne")
        expired = jwt_service.sign("someone", now=int(time.time()) - 7200)

        response = await pipeline.run(make_ctx(make_request(expired)))

        assert response.status_code == 401
        assert b"ExpiredAuthToken" in response.body
        assert resource.calls == 0

    @pytest.mark.asyncio
    async def test_valid_token_reaches_handler(self, loader, gate, jwt_service, user):
        resource = CountingResource()
        composer = PipelineComposer(
            loader,
            ComponentRegistry(),
            make_config(auth_enabled=True),
            gate,
            JsonSchemaBackend(),
            {"Post": resource},
        )
        pipeline = composer.compose("Post", "createOne")

        response = await pipeline.run(make_ctx(make_request(jwt_service.sign(user["id"]))))

        assert response.status_code == 201
        assert resource.calls == 1


class TestBodyParsedAfterGates:
    def _pipeline(self, loader, gate, resource, components=None):
        composer = PipelineComposer(
            loader,
            components or ComponentRegistry(),
            make_config(auth_enabled=True),
            gate,
            JsonSchemaBackend(),
            {"Post": resource},
        )
        return composer.compose("Post", "createOne")

    def test_stage_order(self, loader, gate):
        names = self._pipeline(loader, gate, CountingResource()).stage_names
        assert names.index("authorize") < names.index("parse_body") < names.index("handler")

    @pytest.mark.asyncio
    async def test_missing_credential_wins_over_malformed_body(self, loader, gate):
        resource = CountingResource()
        pipeline = self._pipeline(loader, gate, resource)

        response = await pipeline.run(make_ctx(make_request(body=b"{not json")))

        assert response.status_code == 401
        assert b"LoginRequired" in response.body
        assert resource.calls == 0

    @pytest.mark.asyncio
    async def test_malformed_body_reaches_error_hooks(self, loader, gate, jwt_service, user):
        seen = []

        def on_error(ctx):
            seen.append(ctx.error.code)

        components = ComponentRegistry()
        components.register_hook("Post", "onCreateOneError", on_error)
        resource = CountingResource()
        pipeline = self._pipeline(loader, gate, resource, components)

        response = await pipeline.run(
            make_ctx(make_request(jwt_service.sign(user["id"]), body=b"{not json"))
        )

        assert response.status_code == 400
        assert b"Malformed JSON body" in response.body
        assert seen == ["ValidationError"]
        assert resource.calls == 0


# =============================================================================
# authenticate
# =============================================================================


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_attaches_identity(self, gate, jwt_service, user):
        ctx = make_ctx(make_request(jwt_service.sign(user["id"])))
        await gate.authenticate(ctx)
        assert ctx.identity.id == user["id"]
        assert ctx.identity.roles == frozenset({"User"})
        assert "password" not in ctx.identity.record

    @pytest.mark.asyncio
    async def test_cookie_token(self, gate, jwt_service, user):
        cookie = f"crudforge_access_token={jwt_service.sign(user['id'])}"
        ctx = make_ctx(make_request(cookie=cookie))
        await gate.authenticate(ctx)
        assert ctx.identity.id == user["id"]

    @pytest.mark.asyncio
    async def test_logged_out_cookie_counts_as_missing(self, gate):
        ctx = make_ctx(make_request(cookie="crudforge_access_token=no-token"))
        with pytest.raises(AuthenticationError) as exc_info:
            await gate.authenticate(ctx)
        assert exc_info.value.code == "LoginRequired"

    @pytest.mark.asyncio
    async def test_no_credential(self, gate):
        with pytest.raises(AuthenticationError) as exc_info:
            await gate.authenticate(make_ctx(make_request()))
        assert exc_info.value.status_code == 401
        assert exc_info.value.code == "LoginRequired"

    def test_invalid_token(self, gate):
        with pytest.raises(AuthenticationError) as exc_info:
            gate.resolve_identity("not-a-jwt", "findMany")
        assert exc_info.value.code == "InvalidAuthToken"

    def test_token_signed_with_other_key(self, gate):
        forged = JWTService("another-secret-key-of-sufficient-length").sign("1")
        with pytest.raises(AuthenticationError) as exc_info:
            gate.resolve_identity(forged, "findMany")
        assert exc_info.value.code == "InvalidAuthToken"

    def test_user_no_longer_exists(self, gate, jwt_service):
        with pytest.raises(AuthenticationError) as exc_info:
            gate.resolve_identity(jwt_service.sign("missing"), "findMany")
        assert exc_info.value.code == "UserNoLongerExists"

    def test_stale_token_after_password_change(self, gate, engine, jwt_service, user):
        engine.update(
            "User", {"id": user["id"]}, {"passwordChangedAt": datetime.now(UTC).isoformat()}
        )
        stale = jwt_service.sign(user["id"], now=int(time.time()) - 100)

        with pytest.raises(AuthenticationError) as exc_info:
            gate.resolve_identity(stale, "findMany")
        assert exc_info.value.code == "PasswordChanged"

        # Logging out with a stale token is still allowed
        assert gate.resolve_identity(stale, "logout").id == user["id"]

    def test_inactive_account(self, gate, engine, jwt_service, user):
        engine.update("User", {"id": user["id"]}, {"isActive": False})
        with pytest.raises(AuthenticationError) as exc_info:
            gate.resolve_identity(jwt_service.sign(user["id"]), "findMany")
        assert exc_info.value.code == "AccountInactive"

    def test_self_deleted_account(self, gate, engine, jwt_service, user):
        engine.update(
            "User", {"id": user["id"]}, {"deletedSelfAccountAt": datetime.now(UTC).isoformat()}
        )
        with pytest.raises(AuthenticationError):
            gate.resolve_identity(jwt_service.sign(user["id"]), "findMany")

    def test_unverified_when_verification_required(self, engine, loader, jwt_service):
        config = make_config(auth_enabled=True, require_verification=True)
        gate = AuthGate(engine, jwt_service, config.auth, loader.models["User"])
        pending = engine.create("User", {"email": "new@example.com", "password": "Secret123"})

        with pytest.raises(AuthenticationError) as exc_info:
            gate.resolve_identity(jwt_service.sign(pending["id"]), "findMany")
        assert exc_info.value.status_code == 423
        assert exc_info.value.code == "VerificationRequired"


# =============================================================================
# authorize
# =============================================================================


class TestAccessStage:
    @pytest.mark.asyncio
    async def test_role_in_table_allowed(self, loader):
        stage = access_stage("Post", loader.models["Post"].auth, "create")
        ctx = make_ctx()
        ctx.identity = Identity(id="1", roles=frozenset({"User"}))
        assert await stage(ctx) is None

    @pytest.mark.asyncio
    async def test_role_not_in_table_denied(self, loader):
        stage = access_stage("Post", loader.models["Post"].auth, "delete")
        ctx = make_ctx(action="deleteOne")
        ctx.identity = Identity(id="1", roles=frozenset({"User"}))
        with pytest.raises(AuthorizationError) as exc_info:
            await stage(ctx)
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_super_user_passes(self, loader):
        stage = access_stage("Post", loader.models["Post"].auth, "delete")
        ctx = make_ctx(action="deleteOne")
        ctx.identity = Identity(id="1", is_super_user=True)
        assert await stage(ctx) is None

    @pytest.mark.asyncio
    async def test_no_table_is_noop(self, loader):
        stage = access_stage("Tag", loader.models["Tag"].auth, "delete")
        ctx = make_ctx(model="Tag", action="deleteOne")
        ctx.identity = Identity(id="1")
        assert await stage(ctx) is None

    @pytest.mark.asyncio
    async def test_no_identity_is_noop(self, loader):
        stage = access_stage("Post", loader.models["Post"].auth, "view")
        assert await stage(make_ctx(action="findMany")) is None
