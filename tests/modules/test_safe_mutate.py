"""Tests for keel.modules.safe_mutate.SafeMutationProxy."""

import pytest
import structlog

from keel.core.errors import (
    ModuleNotFoundError,
    MutationNotAllowedError,
    SchemaRejectionError,
    ValidationVetoError,
)
from keel.core.orm import ConfigType
from keel.modules.base import ModuleKey
from keel.modules.events import CONFIG_UPDATED
from tests._support.helpers import flow, posts_entity, rows


class TestProxyAccess:
    @pytest.mark.asyncio
    async def test_only_mutations_are_exposed(self, make_manager):
        manager = await make_manager().build()
        proxy = manager.mutate_config_safe("data")

        assert proxy.key is ModuleKey.DATA
        with pytest.raises(MutationNotAllowedError):
            proxy.get
        with pytest.raises(MutationNotAllowedError):
            proxy.bypass

    @pytest.mark.asyncio
    async def test_dunder_lookup_is_an_attribute_error(self, make_manager):
        manager = await make_manager().build()
        proxy = manager.mutate_config_safe("data")
        assert not hasattr(proxy, "__wrapped__")

    def test_unknown_module(self, make_manager):
        with pytest.raises(ModuleNotFoundError):
            make_manager().mutate_config_safe("billing")

    @pytest.mark.asyncio
    async def test_no_emit_is_refused(self, make_manager, store):
        manager = await make_manager().build()
        proxy = manager.mutate_config_safe("server")
        config = manager.configs()["server"]
        config["cors"]["origin"] = "https://app.test"
        before = [(r.type, r.id) for r in rows(store)]

        with pytest.raises(MutationNotAllowedError, match="no_emit"):
            await proxy.set(config, True)
        with pytest.raises(MutationNotAllowedError, match="no_emit"):
            await proxy.set(config, no_emit=True)
        with pytest.raises(MutationNotAllowedError, match="on_update"):
            await proxy.patch("cors.origin", "https://app.test", None)

        assert manager.configs()["server"]["cors"]["origin"] == "*"
        assert [(r.type, r.id) for r in rows(store)] == before


class TestSuccessfulMutation:
    @pytest.mark.asyncio
    async def test_publishes_updated_event(self, make_manager):
        manager = await make_manager().build()
        events = []

        async def record(event):
            events.append(event.payload)

        await manager.event_bus.subscribe(CONFIG_UPDATED, record)
        await manager.mutate_config_safe("server").patch("cors.origin", "https://app.test")

        assert len(events) == 1
        assert events[0]["module"] == "server"
        assert events[0]["config"]["cors"]["origin"] == "https://app.test"

    @pytest.mark.asyncio
    async def test_returns_the_mutation_result(self, make_manager):
        manager = await make_manager({"data": {"entities": {"posts": posts_entity()}}}).build()
        removed, config = await manager.mutate_config_safe("data").remove("entities.posts")

        assert removed["fields"]["title"]["type"] == "text"
        assert config["entities"] == {}

    @pytest.mark.asyncio
    async def test_on_updated_hook(self, make_manager):
        calls = []

        async def on_updated(key, config):
            calls.append((key, config["cors"]["origin"]))

        manager = await make_manager(on_updated=on_updated).build()
        await manager.mutate_config_safe("server").patch("cors.origin", "https://app.test")

        assert calls == [(ModuleKey.SERVER, "https://app.test")]

    @pytest.mark.asyncio
    async def test_snapshot_follows_saved_config(self, make_manager):
        manager = await make_manager().build()
        await manager.mutate_config_safe("server").patch("cors.origin", "https://app.test")
        assert manager.stable_snapshot["server"]["cors"]["origin"] == "https://app.test"

    @pytest.mark.asyncio
    async def test_log_context_is_scoped_to_the_call(self, make_manager):
        seen = []

        async def on_updated(key, config):
            seen.append(structlog.contextvars.get_contextvars())

        manager = await make_manager(on_updated=on_updated).build()
        await manager.mutate_config_safe("server").patch("cors.origin", "https://app.test")

        assert seen[-1]["module"] == "server"
        assert seen[-1]["method"] == "patch"
        assert "method" not in structlog.contextvars.get_contextvars()


class TestFailedMutation:
    @pytest.mark.asyncio
    async def test_veto_leaves_config_and_store_untouched(self, make_manager, store):
        manager = await make_manager({"workflow": {"flows": {"hello": flow()}}}).build()
        before = [(r.type, r.id) for r in rows(store)]

        with pytest.raises(ValidationVetoError):
            await manager.mutate_config_safe("workflow").patch("flows.hello.start_task", "missing")

        assert manager.configs()["workflow"]["flows"]["hello"]["start_task"] == "hello"
        types = [(r.type, r.id) for r in rows(store)]
        assert types == before

    @pytest.mark.asyncio
    async def test_schema_rejection(self, make_manager):
        manager = await make_manager().build()
        with pytest.raises(SchemaRejectionError):
            await manager.mutate_config_safe("server").patch("cors.allow_methods", ["TRACE"])
        assert "TRACE" not in manager.configs()["server"]["cors"]["allow_methods"]

    @pytest.mark.asyncio
    async def test_build_failure_reverts(self, make_manager, store, connection):
        async def on_modules_built(ctx):
            if ctx.em.has_entity("broken"):
                raise RuntimeError("cannot build broken")

        manager = await make_manager(on_modules_built=on_modules_built).build()

        with pytest.raises(RuntimeError, match="cannot build broken"):
            await manager.mutate_config_safe("data").patch("entities.broken", posts_entity())

        assert manager.configs()["data"]["entities"] == {}
        assert not manager.ctx().em.has_entity("broken")
        assert "broken" not in connection.table_names()
        assert rows(store, ConfigType.DIFF) == []

    @pytest.mark.asyncio
    async def test_later_mutation_still_works(self, make_manager, store):
        manager = await make_manager({"workflow": {"flows": {"hello": flow()}}}).build()
        with pytest.raises(ValidationVetoError):
            await manager.mutate_config_safe("workflow").patch("flows.hello.start_task", "missing")

        await manager.mutate_config_safe("workflow").patch("flows.other", flow(start_task="run", run="log"))
        assert set(manager.configs()["workflow"]["flows"]) == {"hello", "other"}
        assert len(rows(store, ConfigType.DIFF)) == 1

    @pytest.mark.asyncio
    async def test_rollback_is_not_vetoed(self, make_manager, store, connection):
        async def on_modules_built(ctx):
            if ctx.em.has_entity("a"):
                raise RuntimeError("cannot build a")

        manager = await make_manager(on_modules_built=on_modules_built).build()
        proxy = manager.mutate_config_safe("data")

        # restoring {} from {"a", "b"} removes two entities, which the data module refuses
        with pytest.raises(RuntimeError, match="cannot build a"):
            await proxy.overwrite("entities", {"a": posts_entity(), "b": posts_entity()})

        assert manager.configs()["data"]["entities"] == {}
        assert not manager.ctx().em.has_entity("a")
        assert "a" not in connection.table_names()
        assert rows(store, ConfigType.DIFF) == []

    @pytest.mark.asyncio
    async def test_store_failure_during_save_reverts(self, make_manager, store, monkeypatch):
        manager = await make_manager().build()
        snapshot = manager.configs()
        before = [(r.type, r.id, r.json) for r in rows(store)]

        def fail(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(manager.store, "insert", fail)
        monkeypatch.setattr(manager.store, "insert_many", fail)

        with pytest.raises(RuntimeError, match="disk full"):
            await manager.mutate_config_safe("server").patch("cors.origin", "https://app.test")

        assert manager.configs() == snapshot
        assert manager.stable_snapshot == snapshot
        assert [(r.type, r.id, r.json) for r in rows(store)] == before

    @pytest.mark.asyncio
    async def test_veto_inside_save_reverts(self, make_manager, store, monkeypatch):
        manager = await make_manager({"workflow": {"flows": {"hello": flow()}}}).build()
        snapshot = manager.configs()
        before = [(r.type, r.id, r.json) for r in rows(store)]

        async def frozen(diffs):
            raise ValidationVetoError("configuration is frozen")

        monkeypatch.setattr(manager, "validate_diffs", frozen)

        with pytest.raises(ValidationVetoError, match="frozen"):
            await manager.mutate_config_safe("workflow").patch("flows.other", flow(start_task="run", run="log"))

        assert manager.configs() == snapshot
        assert [(r.type, r.id, r.json) for r in rows(store)] == before
