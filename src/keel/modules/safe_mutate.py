"""
Guarded access to one module's mutation API.

``VersionedConfigManager.mutate_config_safe(key)`` hands out a
``SafeMutationProxy``. Only ``set``, ``patch``, ``overwrite`` and ``remove``
are reachable through it. Each call runs the full cycle inside one ``try``:

    1. the mutation itself (validation, restricted paths, module veto)
    2. publish ``config.updated``
    3. ``build_modules()``
    4. ``save()`` unless the build already saved

On failure every module is rolled back to the stable snapshot, the default
update path runs with the reverted config and the original error is
re-raised.

The proxy passes its own update strategy, so ``no_emit``, ``on_update`` and
``skip_before_update`` are refused with ``MutationNotAllowedError``, whether
given by keyword or as extra positional arguments. Log events emitted during
a call carry ``module`` and ``method`` through ``LogContext``.

Tags:
    mutation, rollback, proxy, keel-modules
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from keel.core.errors import MutationNotAllowedError
from keel.core.logging import LogContext, get_logger
from keel.modules.base import ModuleKey
from keel.modules.events import CONFIG_UPDATED, config_event

if TYPE_CHECKING:
    from keel.modules.versioned import VersionedConfigManager

log = get_logger(__name__)

ALLOWED_METHODS = frozenset({"set", "patch", "overwrite", "remove"})

# ConfigObject arguments that only the proxy itself passes
RESERVED_ARGUMENTS = frozenset({"no_emit", "on_update", "skip_before_update"})

# positional parameters each method accepts before the reserved ones
POSITIONAL_ARGUMENTS = {
    "set": ("config",),
    "patch": ("path", "value"),
    "overwrite": ("path", "value"),
    "remove": ("path",),
}


class SafeMutationProxy:
    def __init__(self, manager: VersionedConfigManager, key: ModuleKey):
        self._manager = manager
        self._key = key

    @property
    def key(self) -> ModuleKey:
        return self._key

    def __getattr__(self, name: str) -> Callable[..., Awaitable[Any]]:
        if name.startswith("__"):
            raise AttributeError(name)
        if name not in ALLOWED_METHODS:
            raise MutationNotAllowedError(name, module=self._key.value)

        async def call(*args: Any, **kwargs: Any) -> Any:
            return await self._mutate(name, *args, **kwargs)

        call.__name__ = name
        return call

    def _check_arguments(self, method: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        reserved = sorted(RESERVED_ARGUMENTS.intersection(kwargs))
        if len(args) > len(POSITIONAL_ARGUMENTS[method]):
            reserved.append("no_emit" if method == "set" else "on_update")
        if reserved:
            raise MutationNotAllowedError(f"{method}({reserved[0]}=...)", module=self._key.value)

    async def _mutate(self, method: str, *args: Any, **kwargs: Any) -> Any:
        self._check_arguments(method, args, kwargs)
        async with LogContext(module=self._key.value, method=method):
            return await self._run(method, *args, **kwargs)

    async def _run(self, method: str, *args: Any, **kwargs: Any) -> Any:
        manager = self._manager
        module = manager.get(self._key)

        async def rebuild_and_save(config: dict[str, Any]) -> None:
            await manager.event_bus.publish(
                config_event(CONFIG_UPDATED, module=self._key.value, config=module.to_json())
            )
            state = await manager.build_modules()
            if not state.saved:
                await manager.save()

        log.info("config.safe_mutate")
        try:
            result = await getattr(module.schema(), method)(*args, on_update=rebuild_and_save, **kwargs)
        except Exception as e:
            log.error("config.safe_mutate_failed", error=str(e))
            await manager.revert()
            await manager.on_module_config_updated(self._key, module.config)
            log.warning("config.safe_mutate_reverted")
            raise

        if manager.options.on_updated is not None:
            await manager.options.on_updated(self._key, module.config)
        return result

    def __repr__(self) -> str:
        return f"SafeMutationProxy(module={self._key.value!r})"
