"""Configuration lifecycle engine.

Modules
-------
base            Module, ModuleKey, MODULE_ORDER, BuildContext, BuildResult
config_object   ConfigObject (set / patch / overwrite / remove)
registry        MODULES dispatch table, default_config, default_schema
manager         ModuleManager (transient), ModuleManagerOptions, BuildState
versioned       VersionedConfigManager (store-backed)
safe_mutate     SafeMutationProxy
store           ConfigVersionStore, SqlConfigVersionStore
migrations      Migration, MigrationChain, CURRENT_VERSION
events          Event types published by the managers
plugins         sync_secrets, sync_diffs, sync_config

The managers import the built-in modules, which import ``keel.modules.base``;
they are resolved lazily so that importing ``keel.modules.base`` stays cheap.
"""

from importlib import import_module
from typing import Any

from keel.modules.base import MODULE_ORDER, BuildContext, BuildResult, Module, ModuleKey
from keel.modules.config_object import ConfigObject

_LAZY = {
    "ModuleManager": "keel.modules.manager",
    "ModuleManagerOptions": "keel.modules.manager",
    "BuildState": "keel.modules.manager",
    "VersionedConfigManager": "keel.modules.versioned",
    "FetchResult": "keel.modules.versioned",
    "SafeMutationProxy": "keel.modules.safe_mutate",
    "MODULES": "keel.modules.registry",
    "default_config": "keel.modules.registry",
    "default_schema": "keel.modules.registry",
    "CURRENT_VERSION": "keel.modules.migrations",
    "Migration": "keel.modules.migrations",
    "MigrationChain": "keel.modules.migrations",
    "SqlConfigVersionStore": "keel.modules.store",
    "Plugin": "keel.modules.plugins",
    "sync_secrets": "keel.modules.plugins",
    "sync_diffs": "keel.modules.plugins",
    "sync_config": "keel.modules.plugins",
}


def __getattr__(name: str) -> Any:
    if name in _LAZY:
        return getattr(import_module(_LAZY[name]), name)
    raise AttributeError(f"module 'keel.modules' has no attribute {name!r}")


__all__ = [
    "MODULE_ORDER",
    "BuildContext",
    "BuildResult",
    "ConfigObject",
    "Module",
    "ModuleKey",
    *_LAZY,
]
