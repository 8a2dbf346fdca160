"""Tests for the built-in app plugins in keel.modules.plugins."""

import pytest

from keel.app import App
from keel.core.errors import ConfigError
from keel.modules.plugins import Plugin, sync_config, sync_diffs, sync_secrets


def recorder():
    written = []

    async def write(*args):
        written.append(args if len(args) > 1 else args[0])

    return written, write


class TestPluginHooks:
    @pytest.mark.asyncio
    async def test_hook_order(self, connection, settings):
        calls = []

        def tracing(app):
            def hook(name):
                async def run():
                    calls.append(name)

                return run

            return Plugin(
                "tracing",
                on_boot=hook("on_boot"),
                before_build=hook("before_build"),
                on_built=hook("on_built"),
                on_first_boot=hook("on_first_boot"),
            )

        app = App(connection, plugins=[tracing], settings=settings)
        await app.build()
        assert calls == ["on_boot", "before_build", "on_first_boot", "on_built"]

        await app.build(fetch=True)
        assert calls[4:] == ["before_build", "on_built"]

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_stop_build(self, connection, settings):
        def failing(app):
            async def on_boot():
                raise RuntimeError("plugin down")

            return Plugin("failing", on_boot=on_boot)

        app = await App(connection, plugins=[failing], settings=settings).build()
        assert app.is_built()

    def test_duplicate_name(self, connection, settings):
        _, write = recorder()
        with pytest.raises(ConfigError):
            App(connection, plugins=[sync_config(write), sync_config(write)], settings=settings)


class TestSyncSecrets:
    @pytest.mark.asyncio
    async def test_writes_on_first_boot(self, connection, settings):
        written, write = recorder()
        config = {"auth": {"enabled": True, "jwt": {"secret": "s3cret"}}}
        await App(connection, config, plugins=[sync_secrets(write, include_first_boot=True)], settings=settings).build()

        assert written == [{"auth.jwt.secret": "s3cret"}]

    @pytest.mark.asyncio
    async def test_writes_on_extraction(self, connection, settings):
        written, write = recorder()
        app = await App(connection, plugins=[sync_secrets(write)], settings=settings).build()
        assert written == []

        await app.modules.mutate_config_safe("auth").patch("enabled", True)
        assert written
        assert written[-1]["auth.jwt.secret"] == app.module("auth").config["jwt"]["secret"]

    @pytest.mark.asyncio
    async def test_disabled(self, connection, settings):
        written, write = recorder()
        app = await App(connection, plugins=[sync_secrets(write, enabled=False)], settings=settings).build()
        await app.modules.mutate_config_safe("auth").patch("enabled", True)
        assert written == []


class TestSyncDiffs:
    @pytest.mark.asyncio
    async def test_writes_each_diff(self, connection, settings):
        written, write = recorder()
        app = await App(connection, plugins=[sync_diffs(write)], settings=settings).build()
        await app.modules.mutate_config_safe("server").patch("cors.origin", "https://app.test")

        assert len(written) == 1
        name, diffs = written[0]
        assert name.endswith(".diff.json")
        assert diffs == [{"t": "e", "p": ["server", "cors", "origin"], "o": "*", "n": "https://app.test"}]


class TestSyncConfig:
    @pytest.mark.asyncio
    async def test_writes_after_update(self, connection, settings):
        written, write = recorder()
        app = await App(connection, plugins=[sync_config(write)], settings=settings).build()
        assert written == []

        await app.modules.mutate_config_safe("server").patch("cors.origin", "https://app.test")
        assert len(written) == 1
        assert written[0]["server"]["cors"]["origin"] == "https://app.test"
        assert written[0]["version"] == app.version()

    @pytest.mark.asyncio
    async def test_first_boot_with_secrets(self, connection, settings):
        written, write = recorder()
        config = {"auth": {"enabled": True, "jwt": {"secret": "s3cret"}}}
        plugin = sync_config(write, include_secrets=True, include_first_boot=True)
        await App(connection, config, plugins=[plugin], settings=settings).build()

        assert len(written) == 1
        assert written[0]["auth"]["jwt"]["secret"] == "s3cret"

    @pytest.mark.asyncio
    async def test_secrets_blank_by_default(self, connection, settings):
        written, write = recorder()
        config = {"auth": {"enabled": True, "jwt": {"secret": "s3cret"}}}
        await App(connection, config, plugins=[sync_config(write, include_first_boot=True)], settings=settings).build()

        assert written[0]["auth"]["jwt"]["secret"] == ""
