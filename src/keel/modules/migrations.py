"""Forward-only migrations of the stored configuration tree.

Each ``Migration`` produces ``version`` from ``version - 1``. A chain walks
every step above the stored version in order; it never skips and never
walks backwards.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from keel.core.errors import MigrationError
from keel.core.logging import get_logger
from keel.core.objects import clone

log = get_logger(__name__)

MigrationStep = Callable[[dict[str, Any], Any], dict[str, Any] | Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class Migration:
    version: int
    up: MigrationStep
    description: str = ""


class MigrationChain:
    def __init__(self, migrations: list[Migration]):
        ordered = sorted(migrations, key=lambda m: m.version)
        for prev, nxt in zip(ordered, ordered[1:]):
            if nxt.version != prev.version + 1:
                raise MigrationError(
                    f"Migration chain has a gap between version {prev.version} and {nxt.version}"
                )
        self._migrations = ordered

    @property
    def migrations(self) -> list[Migration]:
        return list(self._migrations)

    @property
    def target(self) -> int:
        return self._migrations[-1].version if self._migrations else 0

    @property
    def base(self) -> int:
        """Oldest version the chain can start from."""
        return self._migrations[0].version - 1 if self._migrations else 0

    async def migrate(
        self,
        from_version: int,
        config: dict[str, Any],
        db: Any = None,
    ) -> tuple[int, dict[str, Any]]:
        """Apply every step above ``from_version``. Returns ``(version, config)``."""
        if from_version > self.target:
            raise MigrationError(
                f"Cannot migrate backwards from version {from_version} to {self.target}"
            ).with_context(version=from_version)
        if from_version < self.base:
            raise MigrationError(
                f"No migration path from version {from_version} (oldest supported: {self.base})"
            ).with_context(version=from_version)

        version = from_version
        current = clone(config)
        for migration in self._migrations:
            if migration.version <= from_version:
                continue
            log.info(
                "config.migrating",
                from_version=version,
                to_version=migration.version,
                description=migration.description,
            )
            result = migration.up(current, db)
            if inspect.isawaitable(result):
                result = await result
            current = result
            version = migration.version
        return version, current


# ── Built-in steps ───────────────────────────────────────────────────────


def _strategies_enabled(config: dict[str, Any], db: Any) -> dict[str, Any]:
    strategies = config.get("auth", {}).get("strategies", {})
    for strategy in strategies.values():
        if isinstance(strategy, dict):
            strategy.setdefault("enabled", True)
    return config


def _flows_renamed(config: dict[str, Any], db: Any) -> dict[str, Any]:
    if "flows" in config:
        flows = config.pop("flows")
        config.setdefault("workflow", flows)
    return config


DEFAULT_MIGRATIONS: list[Migration] = [
    Migration(2, _strategies_enabled, "auth strategies gain an 'enabled' flag"),
    Migration(3, _flows_renamed, "top-level 'flows' renamed to 'workflow'"),
]

CURRENT_VERSION = DEFAULT_MIGRATIONS[-1].version


def default_chain() -> MigrationChain:
    return MigrationChain(DEFAULT_MIGRATIONS)
