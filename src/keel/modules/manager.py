"""
Transient module manager.

Creates one instance per registered module from a (partial) configuration
tree, builds them in ``MODULE_ORDER`` against a freshly rebuilt runtime
context and reacts to the ``BuildResult`` they report. Nothing is persisted;
see ``keel.modules.versioned`` for the store-backed variant.

Architecture:
    ::

        ModuleManager(connection, options)
          │
          ├─ _create_modules(initial)      one Module per ModuleKey
          │
          └─ build_modules()
               ├─ ctx(rebuild=True)        FastAPI server, cleared EntityManager,
               │                           fresh Guard, fresh FastMCP
               ├─ await module.build(ctx)  server → data → auth → media → workflow
               ├─ on_modules_built(ctx)
               └─ BuildResult folded with |
                    sync_required       → em.schema().sync(force=True)
                    ctx_reload_required → ctx(rebuild=True)

Tags:
    modules, lifecycle, orchestration, keel-modules
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from fastapi import FastAPI

from keel.auth.guard import Guard
from keel.core.config import get_settings
from keel.core.errors import KeelError, ModuleNotFoundError
from keel.core.events import EventBus
from keel.core.events.memory import InMemoryEventBus
from keel.core.logging import get_logger
from keel.core.objects import clone
from keel.core.secrets import (
    ExtractedSecrets,
    SecretsMap,
    SecretsResolver,
    extract_secrets,
    inject_secrets,
    secret_paths,
)
from keel.core.transports.mcp import create_keel_mcp
from keel.data.connection import Connection
from keel.data.manager import EntityManager
from keel.modules.base import MODULE_ORDER, BuildContext, BuildResult, Module, ModuleKey
from keel.modules.migrations import MigrationChain
from keel.modules.registry import MODULES

log = get_logger(__name__)

ConfigUpdatedHook = Callable[[ModuleKey, dict[str, Any]], Awaitable[None]]
ContextHook = Callable[[BuildContext], Awaitable[None]]


@dataclass
class ModuleManagerOptions:
    """Construction options shared by both manager variants.

    Attributes:
        initial: Configuration tree (optionally with ``version``) to boot from
        event_bus: Bus the engine publishes on; an in-memory bus by default
        on_updated: Called after a module's config changed and was applied
        on_first_boot: Called once when the store was empty
        base_path: Prefix modules mount their routes under
        on_server_init: Called with every freshly created server
        seed: Runs against a muted, forked entity manager on first boot
        on_modules_built: Called after every build pass, before flags are handled
        store_secrets: Persist extracted secrets as a ``secrets`` row
        secrets: Runtime secrets keyed ``"<module>.<path>"``; they win over the tree
        secrets_resolver: Looks up runtime secrets not given in ``secrets``
        migrations: Chain used to bring stored trees forward
        debug: Log every build step at info level
    """

    initial: dict[str, Any] | None = None
    event_bus: EventBus | None = None
    on_updated: ConfigUpdatedHook | None = None
    on_first_boot: Callable[[], Awaitable[None]] | None = None
    base_path: str = ""
    on_server_init: Callable[[FastAPI], None] | None = None
    seed: ContextHook | None = None
    on_modules_built: ContextHook | None = None
    store_secrets: bool = True
    secrets: dict[str, str] = field(default_factory=dict)
    secrets_resolver: SecretsResolver | None = None
    migrations: MigrationChain | None = None
    debug: bool | None = None


@dataclass
class BuildState:
    """What one ``build_modules()`` call did."""

    built: bool = False
    modules: list[ModuleKey] = field(default_factory=list)
    synced: bool = False
    saved: bool = False
    reloaded: bool = False


def module_key(key: str | ModuleKey) -> ModuleKey | None:
    try:
        return ModuleKey(key)
    except ValueError:
        return None


class ModuleManager:
    """Owns the module instances and the runtime context they build into."""

    def __init__(self, connection: Connection, options: ModuleManagerOptions | None = None):
        self.connection = connection
        self.options = options or ModuleManagerOptions()
        self.event_bus: EventBus = self.options.event_bus or InMemoryEventBus()
        self.debug = self.options.debug if self.options.debug is not None else get_settings().modules_debug
        self.logger = log

        self.modules: dict[ModuleKey, Module] = {}
        self.server: FastAPI | None = None
        self.em: EntityManager | None = None
        self.guard: Guard | None = None
        self.mcp = None
        self._built = False

        self._create_modules(self.options.initial or {})

    # ── Module lifecycle ─────────────────────────────────────────────

    def _trace(self, event: str, **kw: Any) -> None:
        if self.debug:
            log.info(event, **kw)
        else:
            log.debug(event, **kw)

    def _listener(self, key: ModuleKey):
        async def listener(config: dict[str, Any]) -> None:
            await self.on_module_config_updated(key, config)

        return listener

    def _create_modules(self, initial: Mapping[str, Any]) -> None:
        self._trace("modules.creating")
        ctx = self.ctx(rebuild=True)
        modules: dict[ModuleKey, Module] = {}
        for key in MODULE_ORDER:
            module_cls = MODULES[key]
            modules[key] = module_cls(initial.get(key.value) or {}, ctx, on_update=self._listener(key))
        self.modules = modules
        self._built = False
        self._trace("modules.created", modules=[k.value for k in modules])

    async def on_module_config_updated(self, key: ModuleKey, config: dict[str, Any]) -> None:
        """Default listener of every module. The transient manager ignores updates."""

    def is_built(self) -> bool:
        return self._built

    def version(self) -> int:
        return 0

    # ── Context ──────────────────────────────────────────────────────

    def _rebuild_server(self) -> None:
        server = FastAPI(title="keel")
        server.state.base_path = self.options.base_path
        if self.options.on_server_init is not None:
            self.options.on_server_init(server)
        for module in self.modules.values():
            module.on_server_init(server)
        self.server = server

    def ctx(self, rebuild: bool = False) -> BuildContext:
        """The current runtime context; ``rebuild`` replaces every part of it."""
        if rebuild or self.server is None:
            self._rebuild_server()
            self.em = (
                self.em.clear()
                if self.em is not None
                else EntityManager(self.connection, event_bus=self.event_bus)
            )
            self.guard = Guard()
            self.mcp = create_keel_mcp()

        return BuildContext(
            connection=self.connection,
            server=self.server,
            em=self.em,
            event_bus=self.event_bus,
            guard=self.guard,
            mcp=self.mcp,
            logger=self.logger,
        )

    # ── Configuration access ─────────────────────────────────────────

    def get(self, key: str | ModuleKey) -> Module:
        resolved = module_key(key)
        if resolved is None or resolved not in self.modules:
            raise ModuleNotFoundError(str(getattr(key, "value", key)))
        return self.modules[resolved]

    def configs(self) -> dict[str, Any]:
        """Every module's full config, secrets included."""
        return {key.value: module.config for key, module in self.modules.items()}

    def to_json(self, include_secrets: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {"version": self.version()}
        for key, module in self.modules.items():
            if not self._built:
                out[key.value] = None
            elif module.is_built():
                out[key.value] = module.to_json(include_secrets)
            else:
                out[key.value] = module.config_default
        return out

    def get_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"version": self.version()}
        for key, module in self.modules.items():
            schema[key.value] = module.json_schema()
        return schema

    async def set_configs(self, configs: Mapping[str, Any], *, skip_before_update: bool = False) -> None:
        """Replace module configs without notifying listeners. Unknown keys are skipped."""
        self._trace("modules.setting_configs", modules=sorted(configs))
        for name, config in configs.items():
            key = module_key(name)
            if key is None or key not in self.modules:
                continue
            try:
                await self.modules[key].schema().set(
                    config, no_emit=True, skip_before_update=skip_before_update
                )
            except KeelError as e:
                log.error("modules.set_config_failed", module=key.value, error=str(e))
                raise

    # ── Secrets ──────────────────────────────────────────────────────

    def secret_keys(self, configs: Mapping[str, Any] | None = None) -> list[str]:
        """Every secret key the tree declares, filled or blank."""
        configs = self.configs() if configs is None else configs
        keys: list[str] = []
        for key, module in self.modules.items():
            if key.value in configs:
                keys.extend(secret_paths(key.value, configs[key.value], module.json_schema()))
        return keys

    def runtime_secrets(self, keys: list[str]) -> SecretsMap:
        """Secrets supplied at boot for ``keys``: explicit map first, then the resolver."""
        found = {k: self.options.secrets[k] for k in keys if k in self.options.secrets}
        resolver = self.options.secrets_resolver
        if resolver is not None:
            missing = [k for k in keys if k not in found]
            found.update(resolver.resolve_many(missing))
        return found

    def with_runtime_secrets(self, configs: Mapping[str, Any]) -> dict[str, Any]:
        runtime = self.runtime_secrets(self.secret_keys(configs))
        if not runtime:
            return clone(dict(configs))
        self._trace("modules.runtime_secrets", keys=sorted(runtime))
        return inject_secrets(configs, runtime)

    def extract_secrets(self) -> ExtractedSecrets:
        """Blank every secret in the tree; runtime secrets win over extracted values."""
        configs: dict[str, Any] = {}
        secrets: SecretsMap = {}
        for key, module in self.modules.items():
            extracted = extract_secrets(key.value, module.config, module.json_schema())
            configs[key.value] = extracted.configs
            secrets.update(extracted.secrets)
        secrets.update(self.runtime_secrets(self.secret_keys()))
        return ExtractedSecrets(configs=configs, secrets=secrets)

    # ── Build ────────────────────────────────────────────────────────

    async def build(self, fetch: bool = False) -> ModuleManager:
        self._create_modules(self.options.initial or {})
        await self.build_modules()

        keys = self.secret_keys()
        if self.runtime_secrets(keys):
            await self.set_configs(self.with_runtime_secrets(self.configs()))
            await self.build_modules()
        return self

    async def _after_schema_sync(self, state: BuildState) -> None:
        """Hook run after a requested schema sync."""

    async def build_modules(
        self,
        *,
        graceful: bool = False,
        ignore_flags: bool = False,
        drop: bool = False,
        requested: BuildResult | None = None,
    ) -> BuildState:
        state = BuildState()
        if graceful and self._built:
            self._trace("modules.build_skipped", reason="graceful")
            return state

        ctx = self.ctx(rebuild=True)
        result = requested or BuildResult()
        for key in MODULE_ORDER:
            module = self.modules[key]
            module.set_context(ctx)
            result = result | await module.build(ctx)
            module.mark_built()
            state.modules.append(key)
            self._trace("modules.module_built", module=key.value)

        self._built = state.built = True
        self._trace(
            "modules.built",
            sync_required=result.sync_required,
            ctx_reload_required=result.ctx_reload_required,
        )

        if self.options.on_modules_built is not None:
            await self.options.on_modules_built(ctx)

        if not ignore_flags:
            if result.sync_required:
                changes = ctx.em.schema().sync(force=True, drop=drop)
                state.synced = True
                self._trace("modules.schema_synced", **changes.to_dict())
                await self._after_schema_sync(state)

            if result.ctx_reload_required:
                self.ctx(rebuild=True)
                state.reloaded = True
                self._trace("modules.ctx_reloaded")

        return state
