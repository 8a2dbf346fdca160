"""
Store-backed module manager.

Extends the transient ``ModuleManager`` with persistence: the configuration
tree is written to the ``__keel_config`` table under an integer version,
changes under an unchanged version are recorded as diff rows, secrets are
stored apart from the tree, older trees are migrated forward on boot and
every failed save or safe mutation rolls the modules back to the last stable
snapshot.

Boot modes:
    provided  ``initial`` carries a truthy ``version``; the tree is used as is
              and the version must equal the migration target
    partial   ``initial`` is deep-merged over the default config; the stored
              tree (if any) is fetched and wins

Save:
    ::

        extract secrets ──► publish config.secrets_extracted
              │
        fetch latest config/secrets rows
              │ (writes below share one store transaction)
              ├─ none ───────────────► insert config(version)
              ├─ stored ≠ current ───► insert backup(old), config(new), secrets(old)
              └─ stored = current ───► diff(stored, new)
                                         ├─ empty: nothing
                                         └─ validate, insert diff, update config
                                       upsert secrets(version) if they changed
              │
        any other error ─► revert to stable snapshot, re-raise

Tags:
    persistence, versioning, migration, rollback, keel-modules
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Literal

from keel.core.diff import DiffEntry, apply, diff, group_by_module
from keel.core.errors import ConfigNotFoundError, UnregisteredModuleError, VersionMismatchError
from keel.core.logging import get_logger
from keel.core.objects import clone, deep_merge
from keel.core.orm import ConfigRecord, ConfigType
from keel.core.secrets import SecretsMap, inject_secrets
from keel.data.connection import Connection
from keel.modules.base import BuildResult, ModuleKey
from keel.modules.events import (
    CONFIG_DIFF,
    CONFIG_SAVED,
    CONFIG_SECRETS_EXTRACTED,
    config_event,
)
from keel.modules.manager import BuildState, ModuleManager, ModuleManagerOptions, module_key
from keel.modules.migrations import MigrationChain, default_chain
from keel.modules.registry import default_config
from keel.modules.safe_mutate import SafeMutationProxy
from keel.modules.store import ConfigVersionStore, SqlConfigVersionStore

log = get_logger(__name__)

BootMode = Literal["provided", "partial"]


@dataclass
class FetchResult:
    config: ConfigRecord
    secrets: ConfigRecord | None = None


class VersionedConfigManager(ModuleManager):
    """Module manager persisting its configuration in a ``ConfigVersionStore``.

    Example::

        manager = VersionedConfigManager(Connection.from_url("sqlite://"))
        await manager.build()
        await manager.mutate_config_safe("data").patch("entities.posts", {...})
    """

    def __init__(
        self,
        connection: Connection,
        options: ModuleManagerOptions | None = None,
        *,
        store: ConfigVersionStore | None = None,
    ):
        options = options or ModuleManagerOptions()
        given = dict(options.initial or {})
        version = int(given.pop("version", 0) or 0)
        if version:
            booted_with: BootMode = "provided"
            initial = given
        else:
            booted_with = "partial"
            initial = deep_merge(default_config(), given)

        super().__init__(connection, dataclasses.replace(options, initial=initial))

        self.store: ConfigVersionStore = store or SqlConfigVersionStore(connection)
        self.migrations: MigrationChain = options.migrations or default_chain()
        self.booted_with = booted_with
        self._version = version
        self._stable_snapshot: dict[str, Any] | None = None
        self._trace("config.booted", mode=booted_with, version=version)

    def version(self) -> int:
        return self._version

    @property
    def target_version(self) -> int:
        return self.migrations.target

    @property
    def stable_snapshot(self) -> dict[str, Any] | None:
        return clone(self._stable_snapshot)

    def _mark_stable(self) -> None:
        self._stable_snapshot = clone(self.configs())

    async def on_module_config_updated(self, key: ModuleKey, config: dict[str, Any]) -> None:
        if self.options.on_updated is not None:
            await self.options.on_updated(key, config)
        else:
            await self.build_modules()

    # ── Store access ─────────────────────────────────────────────────

    def fetch(self) -> FetchResult | None:
        latest = self.store.fetch_latest([ConfigType.CONFIG, ConfigType.SECRETS])
        config = latest.get(ConfigType.CONFIG)
        if config is None:
            self._trace("config.fetch_empty")
            return None
        self._trace("config.fetched", version=config.version, id=config.id)
        return FetchResult(config=config, secrets=latest.get(ConfigType.SECRETS))

    async def save(self) -> VersionedConfigManager:
        version = self.version()
        extracted = self.extract_secrets()
        configs, secrets = extracted.configs, extracted.secrets
        store_secrets = self.options.store_secrets
        diffs: list[DiffEntry] = []

        log.info("config.saving", version=version, secrets=sorted(secrets))
        await self.event_bus.publish(
            config_event(CONFIG_SECRETS_EXTRACTED, version=version, secrets=secrets)
        )

        try:
            state = self.fetch()
            if state is None:
                raise ConfigNotFoundError()

            with self.store.transaction():
                if state.config.version != version:
                    log.info("config.version_changed", stored=state.config.version, current=version)
                    records = [
                        ConfigRecord(version=state.config.version, type=ConfigType.BACKUP, json=state.config.json),
                        ConfigRecord(version=version, type=ConfigType.CONFIG, json=configs),
                    ]
                    if store_secrets:
                        records.append(
                            ConfigRecord(version=state.config.version, type=ConfigType.SECRETS, json=secrets)
                        )
                    self.store.insert_many(records)
                else:
                    diffs = await self._save_in_place(state, version, configs, secrets, store_secrets)
        except ConfigNotFoundError:
            log.info("config.first_save", version=version)
            self.store.sync()
            self.store.insert(ConfigRecord(version=version, type=ConfigType.CONFIG, json=configs))
        except Exception as e:
            log.error("config.save_failed", version=version, error=str(e))
            await self.revert()
            raise

        # system entities derive from the applied configs
        await self.set_configs(self.configs())
        self._mark_stable()

        await self.event_bus.publish(config_event(CONFIG_SAVED, version=version, diffs=len(diffs)))
        if diffs:
            await self.event_bus.publish(
                config_event(CONFIG_DIFF, version=version, diffs=[d.to_dict() for d in diffs])
            )
        log.info("config.saved", version=version, diffs=len(diffs))
        return self

    async def _save_in_place(
        self,
        state: FetchResult,
        version: int,
        configs: dict[str, Any],
        secrets: SecretsMap,
        store_secrets: bool,
    ) -> list[DiffEntry]:
        diffs = diff(state.config.json, configs)
        if diffs:
            await self.validate_diffs(diffs)
            self.store.insert(
                ConfigRecord(version=version, type=ConfigType.DIFF, json=[d.to_dict() for d in diffs])
            )
            self.store.update_by_id(state.config.id, json=configs)
        else:
            self._trace("config.unchanged", version=version)

        # a missing secrets row stands for an empty map
        stored_secrets = state.secrets.json if state.secrets is not None else {}
        if store_secrets and secrets != stored_secrets:
            if state.secrets is None or state.secrets.version != version:
                self.store.insert(ConfigRecord(version=version, type=ConfigType.SECRETS, json=secrets))
            else:
                self.store.update_by_id(state.secrets.id, json=secrets)
        return diffs

    async def validate_diffs(self, diffs: list[DiffEntry]) -> None:
        """Reject diffs for unknown modules and run each module's veto on its change."""
        for name, entries in group_by_module(diffs).items():
            key = module_key(name) if name else None
            if key is None or key not in self.modules:
                log.error("config.unregistered_module", module=name, diffs=len(entries))
                raise UnregisteredModuleError(str(name), [d.to_dict() for d in entries])

            if self._stable_snapshot is None or key.value not in self._stable_snapshot:
                continue
            current = clone(self._stable_snapshot[key.value])
            proposed = apply({key.value: current}, entries)[key.value]
            await self.modules[key].on_before_update(current, proposed)

    async def revert(self) -> bool:
        """Put every module back to the stable snapshot. Module vetoes are not consulted."""
        if self._stable_snapshot is None:
            log.error("config.revert_unavailable", version=self.version())
            return False
        log.warning("config.reverting", version=self.version())
        await self.set_configs(self._stable_snapshot, skip_before_update=True)
        return True

    # ── Migration and boot ───────────────────────────────────────────

    async def migrate(self, from_version: int, json: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        return await self.migrations.migrate(from_version, json, db=self.connection)

    async def build(self, fetch: bool = False) -> VersionedConfigManager:
        self.connection.init()
        self._trace("config.building", version=self.version(), fetch=fetch)

        if self.version() == 0 or fetch:
            result = self.fetch()
            if result is None:
                await self.setup_initial()
            else:
                self._version = result.config.version
                stored = clone(result.config.json)
                if result.secrets is not None:
                    stored = inject_secrets(stored, result.secrets.json)

                if self._version != self.target_version:
                    self.store.sync()
                    before = self._version
                    self._version, stored = await self.migrate(before, stored)
                    log.info("config.migrated", from_version=before, to_version=self._version)
                    await self.set_configs(self.with_runtime_secrets(stored))
                    await self.build_modules(requested=BuildResult(sync_required=True))
                else:
                    await self.set_configs(self.with_runtime_secrets(stored))
                    await self.build_modules()
        else:
            if self.version() != self.target_version:
                raise VersionMismatchError(self.version(), self.target_version)
            await self.build_modules()

        self._mark_stable()
        return self

    async def _after_schema_sync(self, state: BuildState) -> None:
        await self.save()
        state.saved = True

    async def setup_initial(self) -> None:
        log.info("config.first_boot", version=self.target_version)
        self._version = self.target_version
        self.store.sync()
        state = await self.build_modules()
        if not state.saved:
            await self.save()

        ctx = self.ctx()
        seed_ctx = ctx.replace(em=ctx.em.fork())
        seed_ctx.em.schema().sync(force=True)
        if self.options.seed is not None:
            await self.options.seed(seed_ctx)

        if self.options.on_first_boot is not None:
            await self.options.on_first_boot()

    # ── Safe mutation ────────────────────────────────────────────────

    def mutate_config_safe(self, key: str | ModuleKey) -> SafeMutationProxy:
        module = self.get(key)
        return SafeMutationProxy(self, module.key)
