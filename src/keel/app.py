"""
Application composition root.

``App`` owns a ``VersionedConfigManager`` and wires the pieces that sit
above the configuration engine: the system routes mounted on every rebuilt
server, the permissions they need and the plugins.

Example::

    app = App("sqlite:///keel.db", {"data": {"entities": {...}}})
    await app.build()
    client = TestClient(app.server)

Plugins (``keel.modules.plugins``) are factories called with the app; their
hooks run around ``build()``.

Tags:
    app, composition-root, plugins, keel
"""

from __future__ import annotations

import dataclasses
from typing import Any

from fastapi import FastAPI

from keel.api.app import configure_server
from keel.core.config import KeelSettings, get_settings
from keel.core.errors import ConfigError
from keel.core.events import EventBus
from keel.core.logging import get_logger
from keel.core.secrets import EnvSecretBackend, FileSecretBackend, SecretsResolver
from keel.data.connection import Connection
from keel.modules.base import BuildContext, BuildResult, Module, ModuleKey
from keel.modules.events import APP_BUILT, APP_CONFIG_UPDATED, config_event
from keel.modules.manager import ModuleManagerOptions
from keel.modules.plugins import AppPlugin, Plugin
from keel.modules.versioned import VersionedConfigManager

log = get_logger(__name__)

SYSTEM_PERMISSIONS = ["system.config.read", "system.config.write", "system.schema.read"]


def default_resolver(settings: KeelSettings) -> SecretsResolver:
    resolver = SecretsResolver([EnvSecretBackend(settings.secret_env_prefix)])
    if settings.secrets_dir:
        resolver.add_backend(FileSecretBackend(settings.secrets_dir))
    return resolver


class App:
    def __init__(
        self,
        connection: Connection | str | None = None,
        config: dict[str, Any] | None = None,
        *,
        plugins: list[AppPlugin] | None = None,
        options: ModuleManagerOptions | None = None,
        settings: KeelSettings | None = None,
    ):
        self.settings = settings or get_settings()
        if connection is None:
            connection = self.settings.database_url
        if isinstance(connection, str):
            connection = Connection.from_url(connection, echo=self.settings.database_echo)
        self.connection = connection

        self.plugins: dict[str, Plugin] = {}
        for factory in plugins or []:
            plugin = factory(self)
            if plugin.name in self.plugins:
                raise ConfigError(f"Plugin {plugin.name} already registered")
            self.plugins[plugin.name] = plugin

        options = options or ModuleManagerOptions()
        self.modules = VersionedConfigManager(
            connection,
            dataclasses.replace(
                options,
                initial=config if config is not None else options.initial,
                base_path=options.base_path or self.settings.base_path,
                store_secrets=options.store_secrets and self.settings.store_secrets,
                secrets_resolver=options.secrets_resolver or default_resolver(self.settings),
                debug=options.debug if options.debug is not None else self.settings.modules_debug,
                on_updated=self._on_updated,
                on_first_boot=self._on_first_boot,
                on_server_init=self._on_server_init,
                on_modules_built=self._on_modules_built,
            ),
        )
        self._user_on_modules_built = options.on_modules_built
        self._first_boot = False
        self._booted = False

    # ── Hooks handed to the manager ──────────────────────────────────

    async def _run_plugins(self, hook: str) -> None:
        for name, plugin in self.plugins.items():
            fn = getattr(plugin, hook)
            if fn is None:
                continue
            log.debug("app.plugin", plugin=name, hook=hook)
            try:
                await fn()
            except Exception as e:
                log.warning("app.plugin_failed", plugin=name, hook=hook, error=str(e))

    def _on_server_init(self, server: FastAPI) -> None:
        server.state.keel = self
        configure_server(server, base_path=self.settings.base_path)

    async def _on_modules_built(self, ctx: BuildContext) -> None:
        ctx.guard.register_permissions(SYSTEM_PERMISSIONS)
        if self._user_on_modules_built is not None:
            await self._user_on_modules_built(ctx)

    async def _on_first_boot(self) -> None:
        log.info("app.first_boot")
        self._first_boot = True
        await self._run_plugins("on_first_boot")

    async def _on_updated(self, key: ModuleKey, config: dict[str, Any]) -> None:
        if not self.event_bus.enabled:
            log.warning("app.update_skipped", module=key.value, reason="event bus disabled")
            return
        log.info("app.config_updated", module=key.value)
        await self.modules.build_modules(requested=BuildResult(sync_required=True))
        await self.event_bus.publish(config_event(APP_CONFIG_UPDATED, module=key.value))

    # ── Public API ───────────────────────────────────────────────────

    async def build(self, *, sync: bool = False, fetch: bool = False) -> App:
        if not self._booted:
            self._booted = True
            await self._run_plugins("on_boot")
        await self._run_plugins("before_build")
        await self.modules.build(fetch=fetch)
        if sync:
            await self.modules.build_modules(requested=BuildResult(sync_required=True))

        await self.event_bus.publish(config_event(APP_BUILT, version=self.version()))
        await self._run_plugins("on_built")
        log.info("app.built", version=self.version())
        return self

    @property
    def first_boot(self) -> bool:
        return self._first_boot

    @property
    def event_bus(self) -> EventBus:
        return self.modules.event_bus

    @property
    def server(self) -> FastAPI:
        return self.modules.ctx().server

    @property
    def em(self):
        return self.modules.ctx().em

    @property
    def mcp(self):
        return self.modules.ctx().mcp

    def module(self, key: str | ModuleKey) -> Module:
        return self.modules.get(key)

    def get_schema(self) -> dict[str, Any]:
        return self.modules.get_schema()

    def version(self) -> int:
        return self.modules.version()

    def is_built(self) -> bool:
        return self.modules.is_built()

    def to_json(self, include_secrets: bool = False) -> dict[str, Any]:
        return self.modules.to_json(include_secrets)
