"""
``data`` module: user-declared entities.

Each entry of ``entities`` becomes an ``Entity`` on the context's entity
manager and therefore a table. The build requests a schema sync whenever the
live database lacks a table or column the configuration declares.

Example config::

    {
        "entities": {
            "posts": {
                "fields": {
                    "title": {"type": "text", "required": True},
                    "status": {"type": "enum", "values": ["draft", "published"]},
                }
            }
        }
    }
"""

from __future__ import annotations

import re
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from keel.core.errors import ValidationVetoError
from keel.core.logging import get_logger
from keel.data.entities import Entity, EntityType, FieldType
from keel.data.entities import Field as EntityField
from keel.modules.base import BuildContext, BuildResult, Module, ModuleKey

log = get_logger(__name__)


class FieldConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: FieldType = FieldType.TEXT
    required: bool = False
    values: list[str] = Field(default_factory=list, description="Options of an enum field")
    default: Any = None
    config: dict[str, Any] = Field(default_factory=dict, description="Presentation settings")


class EntityConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: EntityType = EntityType.REGULAR
    fields: dict[str, FieldConfig] = Field(default_factory=dict)
    config: dict[str, Any] = Field(default_factory=dict, description="Presentation settings")


class DataConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", title="Data")

    basepath: str = "/api/data"
    entities: dict[str, EntityConfig] = Field(default_factory=dict)


def construct_entity(name: str, config: EntityConfig) -> Entity:
    fields = [
        EntityField(
            field_name,
            type=field_config.type,
            required=field_config.required,
            values=tuple(field_config.values),
            default=field_config.default,
        )
        for field_name, field_config in config.fields.items()
    ]
    return Entity(name, fields, type=config.type)


def entity_permissions(name: str) -> list[str]:
    return [f"data.{name}.read", f"data.{name}.write"]


class DataModule(Module):
    key = ModuleKey.DATA

    @classmethod
    def get_schema(cls) -> type[BaseModel]:
        return DataConfig

    def overwrite_paths(self) -> list[Any]:
        return [re.compile(r"^entities\..*\.config$"), re.compile(r"^entities\..*\.fields\..*\.config$")]

    async def on_before_update(self, current: dict[str, Any], proposed: dict[str, Any]) -> dict[str, Any]:
        removed = set(current.get("entities", {})) - set(proposed.get("entities", {}))
        if len(removed) > 1:
            raise ValidationVetoError("Cannot remove more than one entity at a time").with_context(
                module=self.key.value, removed=sorted(removed)
            )
        return proposed

    async def build(self, ctx: BuildContext) -> BuildResult:
        config = DataConfig.model_validate(self.config)

        for name, entity_config in config.entities.items():
            ctx.em.add_entity(construct_entity(name, entity_config))
            ctx.helper.ensure_permissions(entity_permissions(name))

        router = APIRouter(tags=["data"])

        @router.get("/entities")
        async def entities() -> dict[str, Any]:
            return {e.name: e.to_dict() for e in ctx.em.entities}

        ctx.server.include_router(router, prefix=config.basepath)

        @ctx.mcp.tool(name="list_entities", description="Names of all registered entities")
        async def list_entities() -> list[str]:
            return ctx.em.entity_names

        plan = ctx.em.schema().plan()
        if plan:
            log.debug("data.sync_needed", **plan.to_dict())
        return BuildResult(sync_required=bool(plan))
