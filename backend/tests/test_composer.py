"""Tests for route pipeline composition."""

from pathlib import Path

import pytest
from fastapi import APIRouter

from conftest import SECRET, make_config, make_loader, BLOG_MODELS
from crudforge.auth.gate import AuthGate
from crudforge.auth.handlers import AuthResource
from crudforge.auth.jwt_service import JWTService
from crudforge.auth.password import PasswordService
from crudforge.components import ComponentRegistry
from crudforge.handlers.crud import ModelResource
from crudforge.pipeline.composer import AUTH_ROUTES, FILE_ROUTES, MODEL_ROUTES, PipelineComposer
from crudforge.pipeline.types import PipelineShape
from crudforge.relations.catalog import RelationCatalog
from crudforge.relations.resolver import RelationResolver
from crudforge.uploads import FileUploadResource, UploadStorage
from crudforge.validation.backends import JsonSchemaBackend, PydanticBackend


def make_composer(
    loader=None, components=None, auth_enabled=True, backend=None, with_gate=True, uploads=False, config=None
):
    loader = loader or make_loader()
    config = config or make_config(auth_enabled=auth_enabled)
    resolver = RelationResolver(RelationCatalog.from_loader(loader))
    jwt_service = JWTService(SECRET)
    user_model = loader.models["User"]
    resources = {
        name: ModelResource(model, None, resolver) for name, model in loader.models.items()
    }
    if config.auth.enabled:
        resources["auth"] = AuthResource(
            user_model, None, resolver, jwt_service, PasswordService(rounds=4), config.auth
        )
    if uploads:
        storage = UploadStorage(Path("uploads"), config.file_upload.restrictions)
        resources["fileUpload"] = FileUploadResource(storage, "/api/uploads")
    return PipelineComposer(
        loader,
        components or ComponentRegistry(),
        config,
        AuthGate(None, jwt_service, config.auth, user_model) if with_gate else None,
        backend or JsonSchemaBackend(),
        resources,
    )


def noop(ctx):
    return None


class TestPipelineShapeInvariant:
    @pytest.mark.parametrize("has_pre", [False, True])
    @pytest.mark.parametrize("has_post", [False, True])
    @pytest.mark.parametrize("action", [action for action, _, _ in MODEL_ROUTES])
    def test_emitter_exactly_once_and_last(self, has_pre, has_post, action):
        components = ComponentRegistry()
        if has_pre:
            components.register_hook("Post", f"before{action[0].upper()}{action[1:]}", noop)
        if has_post:
            components.register_hook("Post", f"after{action[0].upper()}{action[1:]}", noop)

        pipeline = make_composer(components=components).compose("Post", action)

        assert pipeline.stage_names.count("emit") == 1
        assert pipeline.stage_names[-1] == "emit"
        assert pipeline.shape is PipelineShape.select(has_pre, has_post)
        assert ("before_hooks" in pipeline.stage_names) is has_pre
        assert ("after_hooks" in pipeline.stage_names) is has_post

    def test_hooks_surround_handler(self):
        components = ComponentRegistry()
        components.register_hook("Post", "beforeFindMany", noop)
        components.register_hook("Post", "afterFindMany", noop)

        names = make_composer(components=components).compose("Post", "findMany").stage_names
        assert names.index("before_hooks") < names.index("handler") < names.index("after_hooks")


class TestStageInclusion:
    def test_protected_action_full_order(self):
        names = make_composer().compose("Post", "createOne").stage_names
        assert names == (
            "authenticate",
            "authorize",
            "parse_body",
            "inject_query_options",
            "handler",
            "emit",
        )

    def test_public_action_skips_authentication(self):
        names = make_composer().compose("Post", "findMany").stage_names
        assert "authenticate" not in names
        assert "authorize" in names

    def test_auth_disabled_globally(self):
        names = make_composer(auth_enabled=False).compose("User", "findMany").stage_names
        assert "authenticate" not in names

    def test_auth_surface(self):
        composer = make_composer()
        assert "authenticate" not in composer.compose("auth", "login").stage_names
        assert "authenticate" not in composer.compose("auth", "signup").stage_names
        me = composer.compose("auth", "getMe").stage_names
        assert me[0] == "authenticate"
        assert "authorize" in me
        assert me.index("authorize") == 1

    def test_authorize_present_without_user_model(self):
        composer = make_composer(auth_enabled=False, with_gate=False)
        for action, _, _ in MODEL_ROUTES:
            assert composer.compose("Tag", action).stage_names[0] == "authorize"

    def test_body_parsed_only_for_json_actions(self):
        composer = make_composer()
        assert "parse_body" in composer.compose("Post", "updateMany").stage_names
        assert "parse_body" in composer.compose("auth", "login").stage_names
        assert "parse_body" not in composer.compose("Post", "findOne").stage_names
        assert "parse_body" not in composer.compose("Post", "deleteMany").stage_names

    def test_validation_only_with_artifact_for_active_backend(self):
        components = ComponentRegistry()
        components.register_artifact("Post", "create", "jsonschema", {"type": "object"})
        components.register_artifact("Post", "update", "pydantic", object)
        composer = make_composer(components=components)

        assert "validate" in composer.compose("Post", "createOne").stage_names
        assert "validate" not in composer.compose("Post", "updateOne").stage_names
        assert "validate" not in composer.compose("Post", "createMany").stage_names

    def test_artifact_rejected_by_backend(self):
        components = ComponentRegistry()
        components.register_artifact("Post", "create", "pydantic", {"type": "object"})
        composer = make_composer(components=components, backend=PydanticBackend())
        with pytest.raises(ValueError, match="not a valid pydantic validation artifact"):
            composer.compose("Post", "createOne")

    def test_on_error_hooks_attached(self):
        components = ComponentRegistry()
        components.register_hook("Post", "onFindOneError", noop)
        pipeline = make_composer(components=components).compose("Post", "findOne")
        assert pipeline.on_error == (noop,)


class TestComposeAll:
    def test_auth_routes_come_first(self):
        routes = make_composer().compose_all()
        paths = [(r.method, r.path) for r in routes]

        assert paths[: len(AUTH_ROUTES)] == [
            ("GET", "/users/me"),
            ("PATCH", "/users/me"),
            ("DELETE", "/users/me"),
            ("POST", "/auth/login"),
            ("DELETE", "/auth/logout"),
            ("POST", "/auth/signup"),
            ("POST", "/auth/update-password"),
        ]
        assert paths.index(("GET", "/users/me")) < paths.index(("GET", "/users/{id}"))

    def test_every_model_gets_every_route(self):
        routes = make_composer(auth_enabled=False).compose_all()
        assert len(routes) == len(BLOG_MODELS) * len(MODEL_ROUTES)
        assert ("GET", "/categories/{id}") in {(r.method, r.path) for r in routes}

    def test_no_auth_routes_when_disabled(self):
        routes = make_composer(auth_enabled=False).compose_all()
        assert not [r for r in routes if r.model == "auth"]

    def test_disabled_routes_skipped(self):
        documents = [dict(doc) for doc in BLOG_MODELS]
        tag = next(doc for doc in documents if doc["model"] == "Tag")
        tag["router"] = {"disable": {"deleteMany": True, "updateMany": True}}

        routes = make_composer(loader=make_loader(documents)).compose_all()
        tag_actions = {r.action for r in routes if r.model == "Tag"}
        assert "deleteMany" not in tag_actions
        assert "updateMany" not in tag_actions
        assert "findMany" in tag_actions

    def test_fully_disabled_model(self):
        documents = [dict(doc) for doc in BLOG_MODELS]
        comment = next(doc for doc in documents if doc["model"] == "Comment")
        comment["router"] = {"disable": True}

        routes = make_composer(loader=make_loader(documents)).compose_all()
        assert not [r for r in routes if r.model == "Comment"]

    def test_custom_router_paths_skipped(self):
        router = APIRouter()

        @router.get("/{post_id}")
        async def custom_find_one(post_id: str):
            return {"custom": post_id}

        @router.get("/stats")
        async def stats():
            return {}

        components = ComponentRegistry()
        components.register_router("Post", router)

        routes = make_composer(components=components).compose_all()
        post_routes = {(r.method, r.path) for r in routes if r.model == "Post"}
        assert ("GET", "/posts/{id}") not in post_routes
        assert ("PATCH", "/posts/{id}") in post_routes
        assert ("GET", "/posts") in post_routes


class TestUploadSurface:
    def test_routes_mounted_at_base_route(self):
        routes = make_composer(uploads=True).compose_all()
        upload = [(r.method, r.path) for r in routes if r.model == "fileUpload"]
        assert upload == [
            ("GET", "/uploads/{fileType}/{fileName}"),
            ("POST", "/uploads/{fileType}"),
            ("PATCH", "/uploads/{fileType}/{fileName}"),
            ("DELETE", "/uploads/{fileType}/{fileName}"),
        ]
        assert len(upload) == len(FILE_ROUTES)

    def test_authentication_follows_upload_policy(self):
        config = make_config(auth_enabled=True)
        config.file_upload.auth.authentication = {"view": False}
        composer = make_composer(uploads=True, config=config)

        find = composer.compose("fileUpload", "findFile").stage_names
        upload = composer.compose("fileUpload", "uploadFile").stage_names
        assert find[0] == "authorize"
        assert upload[:2] == ("authenticate", "authorize")
        assert "parse_body" not in upload

    def test_disabled_actions_skipped(self):
        config = make_config()
        config.file_upload.router.disable = {"deleteFile": True}
        routes = make_composer(uploads=True, config=config).compose_all()
        actions = {r.action for r in routes if r.model == "fileUpload"}
        assert actions == {"findFile", "uploadFile", "updateFile"}

    def test_custom_router_takes_over_upload(self):
        router = APIRouter()

        @router.post("/{kind}")
        async def custom_upload(kind: str):
            return {}

        components = ComponentRegistry()
        components.register_router("fileUpload", router)
        routes = make_composer(uploads=True, components=components).compose_all()
        actions = {r.action for r in routes if r.model == "fileUpload"}
        assert "uploadFile" not in actions
        assert "findFile" in actions
