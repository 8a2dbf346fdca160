"""Dispatch table of the built-in modules, keyed by ``ModuleKey``."""

from __future__ import annotations

from typing import Any

from keel.auth.module import AuthModule
from keel.data.module import DataModule
from keel.media.module import MediaModule
from keel.modules.base import MODULE_ORDER, Module, ModuleKey
from keel.modules.config_object import validate_config
from keel.server.module import ServerModule
from keel.workflow.module import WorkflowModule

MODULES: dict[ModuleKey, type[Module]] = {
    ModuleKey.SERVER: ServerModule,
    ModuleKey.DATA: DataModule,
    ModuleKey.AUTH: AuthModule,
    ModuleKey.MEDIA: MediaModule,
    ModuleKey.WORKFLOW: WorkflowModule,
}


def default_config() -> dict[str, Any]:
    """Every module's config with all defaults applied."""
    return {key.value: validate_config(MODULES[key].get_schema(), {}, module=key.value) for key in MODULE_ORDER}


def default_schema() -> dict[str, Any]:
    return {key.value: MODULES[key].json_schema() for key in MODULE_ORDER}
