"""Tests for the validator backends and the validate stage."""

import pydantic
import pytest

from crudforge.errors import ValidationError
from crudforge.pipeline.types import RequestContext
from crudforge.validation import JsonSchemaBackend, PydanticBackend, get_backend
from crudforge.validation.stage import validation_stage

POST_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string", "minLength": 3},
        "views": {"type": "integer", "minimum": 0},
    },
    "required": ["title"],
}


class PostCreate(pydantic.BaseModel):
    title: str = pydantic.Field(min_length=3)
    views: int = 0
    status: str = "draft"


# =============================================================================
# JSON Schema
# =============================================================================


class TestJsonSchemaBackend:
    def test_valid_body_returned_unchanged(self):
        body = {"title": "Hello", "extra": 1}
        assert JsonSchemaBackend().validate(POST_SCHEMA, body) is body

    def test_missing_required_field(self):
        with pytest.raises(ValidationError) as exc_info:
            JsonSchemaBackend().validate(POST_SCHEMA, {"views": 1})
        assert exc_info.value.status_code == 400
        assert exc_info.value.details[0]["field"] == "title"

    def test_nested_field_path(self):
        with pytest.raises(ValidationError) as exc_info:
            JsonSchemaBackend().validate(POST_SCHEMA, {"title": "ok!", "views": -1})
        assert [d["field"] for d in exc_info.value.details] == ["views"]

    def test_list_body_validated_per_item(self):
        with pytest.raises(ValidationError) as exc_info:
            JsonSchemaBackend().validate(POST_SCHEMA, [{"title": "Fine"}, {"title": "no"}])
        assert [d["field"] for d in exc_info.value.details] == ["[1].title"]

    def test_accepts_only_dicts(self):
        backend = JsonSchemaBackend()
        assert backend.accepts(POST_SCHEMA)
        assert not backend.accepts(PostCreate)

    def test_invalid_schema_raises(self):
        from jsonschema.exceptions import SchemaError

        with pytest.raises(SchemaError):
            JsonSchemaBackend().validate({"type": "nonsense"}, {})


# =============================================================================
# Pydantic
# =============================================================================


class TestPydanticBackend:
    def test_normalizes_to_sent_fields(self):
        body = PydanticBackend().validate(PostCreate, {"title": "Hello", "views": "5"})
        assert body == {"title": "Hello", "views": 5}

    def test_error_details(self):
        with pytest.raises(ValidationError) as exc_info:
            PydanticBackend().validate(PostCreate, {"title": "x"})
        (detail,) = exc_info.value.details
        assert detail["field"] == "title"

    def test_list_body(self):
        backend = PydanticBackend()
        assert backend.validate(PostCreate, [{"title": "One"}, {"title": "Two"}]) == [
            {"title": "One"},
            {"title": "Two"},
        ]
        with pytest.raises(ValidationError) as exc_info:
            backend.validate(PostCreate, [{"title": "One"}, {}])
        assert exc_info.value.details[0]["field"] == "[1].title"

    def test_accepts_only_models(self):
        backend = PydanticBackend()
        assert backend.accepts(PostCreate)
        assert not backend.accepts(POST_SCHEMA)
        assert not backend.accepts(PostCreate(title="abc"))


class TestGetBackend:
    def test_known_names(self):
        assert isinstance(get_backend("jsonschema"), JsonSchemaBackend)
        assert isinstance(get_backend("pydantic"), PydanticBackend)

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown validation resolver 'marshmallow'"):
            get_backend("marshmallow")


class TestValidationStage:
    def test_replaces_body_with_normalized(self):
        stage = validation_stage(PydanticBackend(), PostCreate)
        ctx = RequestContext(request=None, model="Post", action="createOne")
        ctx.request_body = {"title": "Hello", "views": "2"}
        stage(ctx)
        assert ctx.request_body == {"title": "Hello", "views": 2}

    def test_rejects_foreign_artifact_at_build_time(self):
        with pytest.raises(ValueError, match="not a valid jsonschema validation artifact"):
            validation_stage(JsonSchemaBackend(), PostCreate)
