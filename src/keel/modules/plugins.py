"""
App plugins and the built-in plugins mirroring engine state to a writer.

A plugin is a factory called with the app; it returns a ``Plugin`` whose
hooks run at ``on_boot``, ``before_build``, ``on_built`` and
``on_first_boot``.

Once the app is built the sync plugins subscribe to one engine event and
hand the relevant data to ``write``; ``write`` decides where it ends up (a
file, a vault, a test list).

    sync_secrets   config.secrets_extracted → write(secrets)
    sync_diffs     config.diff              → write("<ms>.diff.json", diffs)
    sync_config    app.config_updated       → write(app.to_json(include_secrets))

Example::

    async def write(secrets):
        Path("secrets.json").write_text(json.dumps(secrets))

    App(conn, plugins=[sync_secrets(write)])
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from keel.core.events import Event
from keel.core.logging import get_logger
from keel.modules.events import APP_CONFIG_UPDATED, CONFIG_DIFF, CONFIG_SECRETS_EXTRACTED

if TYPE_CHECKING:
    from keel.app import App

log = get_logger(__name__)

PluginHook = Callable[[], Awaitable[None]]


@dataclass
class Plugin:
    name: str
    on_boot: PluginHook | None = None
    before_build: PluginHook | None = None
    on_built: PluginHook | None = None
    on_first_boot: PluginHook | None = None


AppPlugin = Callable[["App"], Plugin]


def sync_secrets(
    write: Callable[[dict[str, str]], Awaitable[None]],
    *,
    enabled: bool = True,
    include_first_boot: bool = False,
) -> AppPlugin:
    first_boot = True

    def factory(app: App) -> Plugin:
        async def on_built() -> None:
            nonlocal first_boot
            if not enabled:
                return

            async def on_extracted(event: Event) -> None:
                log.debug("plugin.sync_secrets", keys=sorted(event.payload["secrets"]))
                await write(event.payload["secrets"])

            await app.event_bus.subscribe(CONFIG_SECRETS_EXTRACTED, on_extracted, id="sync-secrets")

            if first_boot and include_first_boot:
                first_boot = False
                await write(app.modules.extract_secrets().secrets)

        return Plugin("keel-sync-secrets", on_built=on_built)

    return factory


def sync_diffs(
    write: Callable[[str, list[dict[str, Any]]], Awaitable[None]],
    *,
    enabled: bool = True,
) -> AppPlugin:
    def factory(app: App) -> Plugin:
        async def on_built() -> None:
            if not enabled:
                return

            async def on_diff(event: Event) -> None:
                name = f"{int(time.time() * 1000)}.diff.json"
                await write(name, event.payload["diffs"])

            await app.event_bus.subscribe(CONFIG_DIFF, on_diff, id="sync-diffs")

        return Plugin("keel-sync-diffs", on_built=on_built)

    return factory


def sync_config(
    write: Callable[[dict[str, Any]], Awaitable[None]],
    *,
    enabled: bool = True,
    include_secrets: bool = False,
    include_first_boot: bool = False,
) -> AppPlugin:
    first_boot = True

    def factory(app: App) -> Plugin:
        async def on_built() -> None:
            nonlocal first_boot
            if not enabled:
                return

            async def on_updated(event: Event) -> None:
                await write(app.to_json(include_secrets))

            await app.event_bus.subscribe(APP_CONFIG_UPDATED, on_updated, id="sync-config")

            if first_boot and include_first_boot:
                first_boot = False
                await write(app.to_json(include_secrets))

        return Plugin("keel-sync-config", on_built=on_built)

    return factory
