"""Integration tests for the SQLAlchemy data engine against in-memory SQLite."""

import pytest
from sqlalchemy import select

from conftest import make_loader
from crudforge.errors import AppError, NotFoundError, ValidationError
from crudforge.persistence.sqlalchemy_engine import SQLAlchemyEngine


def make_post(engine, **data):
    return engine.create("Post", {"title": "Hello", **data})


def join_rows(engine):
    with engine._engine.connect() as conn:
        return conn.execute(select(engine.join_tables["post_tags"])).all()


# =============================================================================
# Plain records
# =============================================================================


class TestRecords:
    def test_create_applies_defaults_and_id(self, engine):
        post = make_post(engine)
        assert post["id"]
        assert post["status"] == "draft"
        assert post["views"] == 0

    def test_unknown_field_rejected(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            make_post(engine, colour="red")
        assert exc_info.value.code == "UnknownField"

    def test_required_field_is_constraint_violation(self, engine):
        with pytest.raises(AppError) as exc_info:
            engine.create("Post", {"body": "no title"})
        assert exc_info.value.status_code == 400

    def test_unique_conflict_is_409(self, engine):
        engine.create("Tag", {"name": "python"})
        with pytest.raises(AppError) as exc_info:
            engine.create("Tag", {"name": "python"})
        assert exc_info.value.status_code == 409
        assert exc_info.value.code == "DuplicateValue"

    def test_find_many_filter_order_and_paging(self, engine):
        for views in (5, 1, 9, 3):
            make_post(engine, title=f"Post {views}", views=views)

        found = engine.find_many(
            "Post",
            {"where": {"views": {"gte": 3}}, "orderBy": [{"views": "desc"}], "skip": 1, "take": 2},
        )
        assert [p["views"] for p in found] == [5, 3]
        assert engine.count("Post", {"views": {"gte": 3}}) == 3

    def test_or_filter(self, engine):
        make_post(engine, title="alpha", status="draft")
        make_post(engine, title="beta", status="published")
        make_post(engine, title="gamma", status="archived")
        where = {"OR": [{"status": "published"}, {"title": {"startsWith": "al"}}]}
        assert {p["title"] for p in engine.find_many("Post", {"where": where})} == {"alpha", "beta"}

    def test_empty_or_matches_nothing(self, engine):
        make_post(engine)
        assert engine.find_many("Post", {"where": {"OR": []}}) == []
        assert engine.count("Post", {"OR": []}) == 0

    def test_or_with_match_all_branch(self, engine):
        make_post(engine, status="draft")
        make_post(engine, status="published")
        assert engine.count("Post", {"OR": [{}, {"status": "draft"}]}) == 2

    def test_select_and_omit(self, engine):
        post = make_post(engine, body="text")
        only = engine.find_one("Post", {"id": post["id"]}, {"select": {"title": True}})
        assert only == {"title": "Hello"}
        without = engine.find_one("Post", {"id": post["id"]}, {"omit": ["body"]})
        assert "body" not in without and "title" in without

    def test_update_and_delete(self, engine):
        post = make_post(engine)
        updated = engine.update("Post", {"id": post["id"]}, {"views": 7})
        assert updated["views"] == 7
        assert engine.update("Post", {"id": "missing"}, {"views": 1}) is None

        assert engine.delete("Post", {"id": post["id"]})["id"] == post["id"]
        assert engine.find_one("Post", {"id": post["id"]}) is None
        assert engine.delete("Post", {"id": post["id"]}) is None

    def test_batch_update_and_delete(self, engine):
        for title in ("a", "b", "c"):
            make_post(engine, title=title)
        assert engine.update_many("Post", {"title": {"in": ["a", "b"]}}, {"status": "published"}) == 2
        assert engine.count("Post", {"status": "published"}) == 2
        assert engine.delete_many("Post", {"status": "published"}) == 2
        assert engine.count("Post") == 1

    def test_batch_update_rejects_relations(self, engine):
        with pytest.raises(ValidationError):
            engine.update_many("Post", {"title": "a"}, {"category": {"connect": {"id": "1"}}})


# =============================================================================
# Credentials
# =============================================================================


class TestPasswords:
    def test_password_hashed_and_hidden(self, engine, password_service):
        user = engine.create("User", {"email": "ada@example.com", "password": "Secret123"})
        assert "password" not in user

        raw = engine.find_raw("User", {"id": user["id"]})
        assert raw["password"] != "Secret123"
        assert password_service.verify("Secret123", raw["password"])

    def test_hidden_even_when_selected(self, engine):
        user = engine.create("User", {"email": "ada@example.com", "password": "Secret123"})
        found = engine.find_one("User", {"id": user["id"]}, {"select": ["email", "password"]})
        assert found == {"email": "ada@example.com"}

    def test_batch_update_hashes(self, engine, password_service):
        user = engine.create("User", {"email": "ada@example.com", "password": "Secret123"})
        engine.update_many("User", {"id": user["id"]}, {"password": "Other456"})
        raw = engine.find_raw("User", {"id": user["id"]})
        assert password_service.verify("Other456", raw["password"])


# =============================================================================
# Relation operation trees
# =============================================================================


class TestSingularRelations:
    def test_create_nested(self, engine):
        post = make_post(engine, category={"create": {"name": "News"}})
        found = engine.find_one("Post", {"id": post["id"]}, {"include": {"category": True}})
        assert found["category"]["name"] == "News"

    def test_connect_by_unique_field(self, engine):
        category = engine.create("Category", {"name": "News"})
        post = make_post(engine, category={"connect": {"name": "News"}})
        assert post["categoryId"] == category["id"]

    def test_connect_missing_target(self, engine):
        with pytest.raises(NotFoundError):
            make_post(engine, category={"connect": {"name": "Nope"}})

    def test_update_nested(self, engine):
        post = make_post(engine, category={"create": {"name": "News"}})
        engine.update(
            "Post",
            {"id": post["id"]},
            {"category": {"update": {"match": {"id": post["categoryId"]}, "data": {"name": "Daily"}}}},
        )
        assert engine.find_one("Category", {"id": post["categoryId"]})["name"] == "Daily"

    def test_disconnect_and_delete(self, engine):
        post = make_post(engine, category={"create": {"name": "News"}})
        category_id = post["categoryId"]

        disconnected = engine.update("Post", {"id": post["id"]}, {"category": {"disconnect": True}})
        assert disconnected["categoryId"] is None
        assert engine.find_one("Category", {"id": category_id}) is not None

        engine.update("Post", {"id": post["id"]}, {"category": {"connect": {"id": category_id}}})
        engine.update("Post", {"id": post["id"]}, {"category": {"delete": True}})
        assert engine.find_one("Category", {"id": category_id}) is None

    def test_failed_nested_write_rolls_back(self, engine):
        with pytest.raises(NotFoundError):
            make_post(
                engine,
                comments={"create": [{"body": "first"}]},
                category={"connect": {"id": "missing"}},
            )
        assert engine.count("Post") == 0
        assert engine.count("Comment") == 0


class TestOneToMany:
    def test_create_and_include(self, engine):
        post = make_post(engine, comments={"create": [{"body": "one"}, {"body": "two"}]})
        found = engine.find_one("Post", {"id": post["id"]}, {"include": ["comments"]})
        assert sorted(c["body"] for c in found["comments"]) == ["one", "two"]

    def test_connect_update_disconnect_delete(self, engine):
        loose = engine.create("Comment", {"body": "loose"})
        post = make_post(engine, comments={"create": [{"body": "keep"}, {"body": "drop"}]})
        comments = {c["body"]: c["id"] for c in engine.find_many("Comment")}

        engine.update(
            "Post",
            {"id": post["id"]},
            {
                "comments": {
                    "connect": [{"id": loose["id"]}],
                    "update": [{"match": {"id": comments["keep"]}, "data": {"body": "kept"}}],
                    "disconnect": [{"id": comments["drop"]}],
                }
            },
        )
        owned = engine.find_many("Comment", {"where": {"postId": post["id"]}})
        assert sorted(c["body"] for c in owned) == ["kept", "loose"]

        engine.update("Post", {"id": post["id"]}, {"comments": {"deleteMany": {"id": {"in": [loose["id"]]}}}})
        assert engine.find_one("Comment", {"id": loose["id"]}) is None
        assert engine.find_one("Comment", {"id": comments["drop"]}) is not None

    def test_update_scoped_to_owner(self, engine):
        post = make_post(engine)
        other = engine.create("Comment", {"body": "elsewhere"})
        with pytest.raises(NotFoundError):
            engine.update(
                "Post",
                {"id": post["id"]},
                {"comments": {"update": [{"match": {"id": other["id"]}, "data": {"body": "x"}}]}},
            )


class TestManyToMany:
    def test_create_and_connect(self, engine):
        engine.create("Tag", {"name": "python"})
        post = make_post(engine, tags={"create": [{"name": "sql"}], "connect": [{"name": "python"}]})
        found = engine.find_one("Post", {"id": post["id"]}, {"include": {"tags": True}})
        assert sorted(t["name"] for t in found["tags"]) == ["python", "sql"]

    def test_connect_twice_links_once(self, engine):
        engine.create("Tag", {"name": "python"})
        post = make_post(engine, tags={"connect": [{"name": "python"}]})
        engine.update("Post", {"id": post["id"]}, {"tags": {"connect": [{"name": "python"}]}})
        assert len(join_rows(engine)) == 1

    def test_disconnect_keeps_tag(self, engine):
        post = make_post(engine, tags={"create": [{"name": "sql"}]})
        engine.update("Post", {"id": post["id"]}, {"tags": {"disconnect": [{"name": "sql"}]}})
        assert join_rows(engine) == []
        assert engine.count("Tag") == 1

    def test_delete_many_removes_tag(self, engine):
        post = make_post(engine, tags={"create": [{"name": "sql"}, {"name": "go"}]})
        engine.update("Post", {"id": post["id"]}, {"tags": {"deleteMany": {"name": "go"}}})
        assert [t["name"] for t in engine.find_many("Tag")] == ["sql"]

    def test_deleting_owner_unlinks(self, engine):
        post = make_post(engine, tags={"create": [{"name": "sql"}]})
        engine.delete("Post", {"id": post["id"]})
        assert join_rows(engine) == []
        assert engine.count("Tag") == 1

    def test_nested_include_options(self, engine):
        post = make_post(engine, tags={"create": [{"name": "b"}, {"name": "a"}]})
        found = engine.find_one(
            "Post",
            {"id": post["id"]},
            {"include": {"tags": {"orderBy": {"name": "asc"}, "select": {"name": True}}}},
        )
        assert found["tags"] == [{"name": "a"}, {"name": "b"}]


class TestSchema:
    def test_self_referencing_many_to_many_unsupported(self):
        loader = make_loader(
            [{"model": "Person", "relations": [{"name": "friends", "model": "Person", "kind": "many", "through": "friendships"}]}]
        )
        with pytest.raises(ValueError, match="self-referencing"):
            SQLAlchemyEngine("sqlite:///:memory:", loader)

    def test_unknown_include(self, engine):
        post = make_post(engine)
        with pytest.raises(ValidationError):
            engine.find_one("Post", {"id": post["id"]}, {"include": {"author": True}})
