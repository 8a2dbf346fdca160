"""Tests for keel.modules.config_object.ConfigObject."""

import re

import pytest
from pydantic import BaseModel, ConfigDict, Field

from keel.core.errors import PathNotFoundError, RestrictedPathError, SchemaRejectionError, ValidationVetoError
from keel.modules.config_object import ConfigObject


class Item(BaseModel):
    model_config = ConfigDict(extra="forbid")

    label: str = ""
    tags: list[str] = Field(default_factory=list)
    config: dict = Field(default_factory=dict)


class Sample(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    name: str = "sample"
    items: dict[str, Item] = Field(default_factory=dict)
    internal: dict = Field(default_factory=dict)


class Recorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, config):
        self.calls.append(config)


class TestConstruction:
    def test_defaults_filled(self):
        obj = ConfigObject(Sample, {"enabled": True})
        assert obj.get() == {"enabled": True, "name": "sample", "items": {}, "internal": {}}
        assert obj.default()["enabled"] is False

    def test_invalid_initial_rejected(self):
        with pytest.raises(SchemaRejectionError) as exc_info:
            ConfigObject(Sample, {"enabled": "not-a-bool", "unknown": 1}, name="sample")
        assert exc_info.value.context.module == "sample"
        assert exc_info.value.errors

    def test_get_returns_copy(self):
        obj = ConfigObject(Sample)
        obj.get()["items"]["x"] = {}
        assert obj.get()["items"] == {}


class TestMutations:
    @pytest.mark.asyncio
    async def test_patch_merges_and_notifies(self):
        listener = Recorder()
        obj = ConfigObject(Sample, on_update=listener)

        partial, config = await obj.patch("items.a", {"label": "A"})

        assert partial == {"items": {"a": {"label": "A"}}}
        assert config["items"]["a"] == {"label": "A", "tags": [], "config": {}}
        assert listener.calls == [config]

    @pytest.mark.asyncio
    async def test_patch_replaces_sequences(self):
        obj = ConfigObject(Sample, {"items": {"a": {"tags": ["x", "y"]}}})
        _, config = await obj.patch("items.a", {"tags": ["z"]})
        assert config["items"]["a"]["tags"] == ["z"]

    @pytest.mark.asyncio
    async def test_overwrite_paths_replace_whole_records(self):
        obj = ConfigObject(
            Sample,
            {"items": {"a": {"config": {"keep": 1}}}},
            overwrite_paths=[re.compile(r"^items\..*\.config$")],
        )
        _, config = await obj.patch("items.a", {"config": {"new": 2}})
        assert config["items"]["a"]["config"] == {"new": 2}

    @pytest.mark.asyncio
    async def test_overwrite_and_remove(self):
        obj = ConfigObject(Sample, {"items": {"a": {"label": "A", "tags": ["x"]}}})

        _, config = await obj.overwrite("items.a", {"label": "B"})
        assert config["items"]["a"] == {"label": "B", "tags": [], "config": {}}

        removed, config = await obj.remove("items.a")
        assert removed["label"] == "B"
        assert config["items"] == {}

    @pytest.mark.asyncio
    async def test_remove_missing_path(self):
        obj = ConfigObject(Sample, name="sample")
        with pytest.raises(PathNotFoundError):
            await obj.remove("items.nope")

    @pytest.mark.asyncio
    async def test_invalid_value_leaves_config_untouched(self):
        listener = Recorder()
        obj = ConfigObject(Sample, on_update=listener)
        with pytest.raises(SchemaRejectionError):
            await obj.patch("enabled", {"nested": True})
        assert obj.get()["enabled"] is False
        assert listener.calls == []

    @pytest.mark.asyncio
    async def test_no_emit_skips_listener_but_not_veto(self):
        listener = Recorder()
        seen = []

        async def before(current, proposed):
            seen.append((current["name"], proposed["name"]))
            return proposed

        obj = ConfigObject(Sample, on_update=listener, on_before_update=before)
        await obj.set({"name": "quiet"}, no_emit=True)

        assert listener.calls == []
        assert seen == [("sample", "quiet")]

    @pytest.mark.asyncio
    async def test_veto_blocks_change(self):
        async def veto(current, proposed):
            if proposed["enabled"]:
                raise ValidationVetoError("cannot enable")
            return proposed

        obj = ConfigObject(Sample, on_before_update=veto)
        with pytest.raises(ValidationVetoError):
            await obj.patch("", {"enabled": True})
        assert obj.get()["enabled"] is False

    @pytest.mark.asyncio
    async def test_skip_before_update_restores_past_veto(self):
        async def veto(current, proposed):
            if not proposed["enabled"]:
                raise ValidationVetoError("cannot disable")
            return proposed

        obj = ConfigObject(Sample, initial={"enabled": True}, on_before_update=veto)
        with pytest.raises(ValidationVetoError):
            await obj.set({"enabled": False}, no_emit=True)

        await obj.set({"enabled": False}, no_emit=True, skip_before_update=True)
        assert obj.get()["enabled"] is False

    @pytest.mark.asyncio
    async def test_before_update_may_transform(self):
        async def upper(current, proposed):
            proposed["name"] = proposed["name"].upper()
            return proposed

        obj = ConfigObject(Sample, on_before_update=upper)
        _, config = await obj.patch("name", "loud")
        assert config["name"] == "LOUD"

    @pytest.mark.asyncio
    async def test_explicit_on_update_replaces_listener(self):
        default = Recorder()
        strategy = Recorder()
        obj = ConfigObject(Sample, on_update=default)

        await obj.patch("name", "x", on_update=strategy)

        assert default.calls == []
        assert len(strategy.calls) == 1


class TestRestrictedPaths:
    @pytest.mark.asyncio
    async def test_restricted_path_rejected(self):
        obj = ConfigObject(Sample, restrict_paths=["internal"], name="sample")
        with pytest.raises(RestrictedPathError) as exc_info:
            await obj.patch("internal", {"x": 1})
        assert exc_info.value.path == "internal"

        with pytest.raises(RestrictedPathError):
            await obj.remove("internal")

    @pytest.mark.asyncio
    async def test_bypass_lifts_check_once(self):
        obj = ConfigObject(Sample, restrict_paths=["internal"])
        await obj.bypass().patch("internal", {"x": 1})
        assert obj.get()["internal"] == {"x": 1}

        with pytest.raises(RestrictedPathError):
            await obj.patch("internal", {"y": 2})
