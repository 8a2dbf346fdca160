"""
Module contract.

A module owns one sub-tree of the configuration (its pydantic schema), turns
it into runtime state during ``build(ctx)``, and reports follow-up work
through the ``BuildResult`` it returns.

Architecture:
    ::

        ModuleManager ── creates ──► Module(initial, on_update=listener)
              │                          │
              │ build_modules()          ├─ ConfigObject (set/patch/overwrite/remove)
              │                          │
              ▼                          ▼
        BuildContext ─────────────► await module.build(ctx) ──► BuildResult
        (connection, server, em,                                  │
         event_bus, guard, mcp,        folded with | by the ◄──────┘
         logger, helper)               manager

Tags:
    modules, lifecycle, build, keel-modules
"""

from __future__ import annotations

import dataclasses
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel

from keel.core.errors import KeelError
from keel.core.secrets import extract_secrets
from keel.modules.config_object import ConfigObject, OverwritePath, UpdateHandler

if TYPE_CHECKING:
    from fastapi import FastAPI
    from mcp.server.fastmcp import FastMCP

    from keel.auth.guard import Guard
    from keel.core.events import EventBus
    from keel.data.connection import Connection
    from keel.data.entities import Entity
    from keel.data.manager import EntityManager


class ModuleKey(str, enum.Enum):
    SERVER = "server"
    DATA = "data"
    AUTH = "auth"
    MEDIA = "media"
    WORKFLOW = "workflow"


# build order; later modules may depend on state registered by earlier ones
MODULE_ORDER: tuple[ModuleKey, ...] = (
    ModuleKey.SERVER,
    ModuleKey.DATA,
    ModuleKey.AUTH,
    ModuleKey.MEDIA,
    ModuleKey.WORKFLOW,
)


@dataclass(frozen=True)
class BuildResult:
    """Follow-up work requested by a build step.

    >>> BuildResult(sync_required=True) | BuildResult(ctx_reload_required=True)
    BuildResult(sync_required=True, ctx_reload_required=True)
    """

    sync_required: bool = False
    ctx_reload_required: bool = False

    def __or__(self, other: BuildResult) -> BuildResult:
        if not isinstance(other, BuildResult):
            return NotImplemented
        return BuildResult(
            sync_required=self.sync_required or other.sync_required,
            ctx_reload_required=self.ctx_reload_required or other.ctx_reload_required,
        )

    def __bool__(self) -> bool:
        return self.sync_required or self.ctx_reload_required


@dataclass
class BuildContext:
    """Runtime context handed to every module build."""

    connection: Connection
    server: FastAPI
    em: EntityManager
    event_bus: EventBus
    guard: Guard
    mcp: FastMCP
    logger: Any
    helper: ModuleHelper = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.helper = ModuleHelper(self)

    def replace(self, **changes: Any) -> BuildContext:
        return dataclasses.replace(self, **changes)


class ModuleHelper:
    """Build-time helpers shared by modules."""

    def __init__(self, ctx: BuildContext):
        self.ctx = ctx

    def ensure_entity(self, entity: Entity) -> BuildResult:
        """Register a system entity; request a sync if the database lacks it."""
        self.ctx.em.ensure_entity(entity)
        plan = self.ctx.em.schema().plan()
        return BuildResult(sync_required=plan.touches(entity.name))

    def ensure_permissions(self, names: list[str]) -> None:
        self.ctx.guard.register_permissions(names)


class Module(ABC):
    """Base class of every functional module."""

    key: ClassVar[ModuleKey]

    def __init__(
        self,
        initial: dict[str, Any] | None = None,
        ctx: BuildContext | None = None,
        *,
        on_update: UpdateHandler | None = None,
    ):
        self._ctx = ctx
        self._built = False
        self._schema = ConfigObject(
            self.get_schema(),
            initial,
            name=self.key.value,
            on_update=on_update,
            on_before_update=self.on_before_update,
            restrict_paths=self.restricted_paths(),
            overwrite_paths=self.overwrite_paths(),
        )

    @classmethod
    @abstractmethod
    def get_schema(cls) -> type[BaseModel]: ...

    @classmethod
    def json_schema(cls) -> dict[str, Any]:
        return cls.get_schema().model_json_schema()

    @abstractmethod
    async def build(self, ctx: BuildContext) -> BuildResult: ...

    async def on_before_update(self, current: dict[str, Any], proposed: dict[str, Any]) -> dict[str, Any]:
        """Veto (raise) or transform a proposed config. Default accepts it."""
        return proposed

    def on_server_init(self, server: FastAPI) -> None:
        """Called whenever a fresh server is created, before any build."""

    def restricted_paths(self) -> list[str]:
        return []

    def overwrite_paths(self) -> list[OverwritePath]:
        """Paths replaced wholesale even by ``patch`` (records always sent in full)."""
        return []

    def schema(self) -> ConfigObject:
        return self._schema

    @property
    def config(self) -> dict[str, Any]:
        return self._schema.get()

    @property
    def config_default(self) -> dict[str, Any]:
        return self._schema.default()

    @property
    def ctx(self) -> BuildContext:
        if self._ctx is None:
            raise KeelError(f"Context not set for module {self.key.value!r}")
        return self._ctx

    def set_context(self, ctx: BuildContext) -> Module:
        self._ctx = ctx
        return self

    def mark_built(self) -> None:
        self._built = True

    def is_built(self) -> bool:
        return self._built

    def to_json(self, include_secrets: bool = False) -> dict[str, Any]:
        config = self.config
        if include_secrets:
            return config
        return extract_secrets(self.key.value, config, self.json_schema()).configs

    def __repr__(self) -> str:
        return f"{type(self).__name__}(built={self._built})"
