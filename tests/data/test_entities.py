"""Tests for keel.data: entities, the entity manager and schema sync."""

import pytest
from sqlalchemy import inspect

from keel.core.errors import EntityExistsError, EntityNotFoundError, FieldReplaceError
from keel.data.entities import Entity, EntityType, Field, FieldType
from keel.data.manager import EntityManager


def users() -> Entity:
    return Entity(
        "users",
        [Field("email", required=True), Field("role", FieldType.ENUM, values=("admin",))],
        type=EntityType.SYSTEM,
    )


class TestEntity:
    def test_replace_field_enum(self):
        entity = users()
        result = entity.replace_field_enum("role", ["admin", "editor"])
        assert result.is_ok()
        assert entity.field("role").values == ("admin", "editor")

    def test_replace_field_enum_errors_are_returned(self):
        entity = users()
        assert isinstance(entity.replace_field_enum("missing", ["a"]).error, FieldReplaceError)
        assert entity.replace_field_enum("email", ["a"]).is_err()
        assert entity.replace_field_enum("role", []).is_err()
        assert entity.field("role").values == ("admin",)

    def test_merge_adds_missing_fields(self):
        entity = Entity("users", [Field("email")])
        assert entity.merge(users()) is True
        assert entity.field_names == ["email", "role"]
        assert entity.merge(users()) is False


class TestEntityManager:
    def test_add_and_lookup(self, connection):
        em = EntityManager(connection)
        em.add_entity(users())
        assert em.entity_names == ["users"]
        with pytest.raises(EntityExistsError):
            em.add_entity(users())
        with pytest.raises(EntityNotFoundError):
            em.entity("posts")

    def test_ensure_entity_merges(self, connection):
        em = EntityManager(connection)
        em.add_entity(Entity("users", [Field("email"), Field("nickname")]))
        assert em.ensure_entity(users()) is True
        assert em.entity("users").field_names == ["email", "nickname", "role"]

    def test_fork_mutes_events(self, connection):
        em = EntityManager(connection, [users()])
        fork = em.fork()
        assert fork.emit_events is False
        assert fork.entity_names == ["users"]
        fork.entity("users").add_field(Field("extra"))
        assert not em.entity("users").has_field("extra")

    def test_clear(self, connection):
        em = EntityManager(connection, [users()])
        assert em.clear().entity_names == []


class TestSchemaSync:
    def test_plan_without_force_changes_nothing(self, connection):
        em = EntityManager(connection, [users()])
        changes = em.schema().sync()
        assert changes.create == ["users"]
        assert changes.applied is False
        assert "users" not in connection.table_names()

    def test_sync_creates_tables_and_adds_columns(self, connection):
        em = EntityManager(connection, [users()])
        em.schema().sync(force=True)
        assert "users" in connection.table_names()

        em.entity("users").add_field(Field("nickname"))
        plan = em.schema().plan()
        assert plan.add_columns == {"users": ["nickname"]}
        assert plan.touches("users")

        em.schema().sync(force=True)
        columns = [c["name"] for c in inspect(connection.engine).get_columns("users")]
        assert "nickname" in columns
        assert not em.schema().plan()

    def test_drop_spares_internal_tables(self, connection, store):
        store.sync()
        em = EntityManager(connection, [users()])
        em.schema().sync(force=True)
        em.clear()

        changes = em.schema().sync(force=True, drop=True)
        assert changes.drop == ["users"]
        assert "__keel_config" in connection.table_names()
        assert "users" not in connection.table_names()

    @pytest.mark.asyncio
    async def test_insert_one_and_count(self, connection):
        em = EntityManager(connection, [users()])
        em.schema().sync(force=True)
        row_id = await em.insert_one("users", {"email": "a@example.com", "role": "admin"})
        assert row_id == 1
        assert em.count("users") == 1
