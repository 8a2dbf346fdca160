"""``media`` module: storage adapter selection and the media entity."""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from keel.core.errors import ValidationVetoError
from keel.core.secrets import secret_field
from keel.data.entities import Entity, EntityType, FieldType
from keel.data.entities import Field as EntityField
from keel.modules.base import BuildContext, BuildResult, Module, ModuleKey

MEDIA_PERMISSIONS = ["media.file.read", "media.file.upload", "media.file.delete"]


class LocalAdapterConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str = "./uploads"


class S3AdapterConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    access_key: str = ""
    secret_access_key: str = secret_field()
    url: str = Field(default="", description="Bucket URL including region")


class LocalAdapter(BaseModel):
    model_config = ConfigDict(extra="forbid", title="local")

    type: Literal["local"] = "local"
    config: LocalAdapterConfig = Field(default_factory=LocalAdapterConfig)


class S3Adapter(BaseModel):
    model_config = ConfigDict(extra="forbid", title="s3")

    type: Literal["s3"] = "s3"
    config: S3AdapterConfig = Field(default_factory=S3AdapterConfig)


Adapter = Annotated[LocalAdapter | S3Adapter, Field(discriminator="type")]


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    body_max_size: int | None = Field(default=None, description="Max body size in bytes; unlimited if unset")


class MediaConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", title="Media")

    enabled: bool = False
    basepath: str = "/api/media"
    entity_name: str = "media"
    storage: StorageConfig = Field(default_factory=StorageConfig)
    adapter: Adapter | None = None


def media_entity(name: str) -> Entity:
    return Entity(
        name,
        [
            EntityField("path", FieldType.TEXT, required=True),
            EntityField("folder", FieldType.BOOLEAN, default=False),
            EntityField("mime_type", FieldType.TEXT),
            EntityField("size", FieldType.INTEGER),
            EntityField("etag", FieldType.TEXT),
            EntityField("modified_at", FieldType.DATE),
            EntityField("reference", FieldType.TEXT),
            EntityField("entity_id", FieldType.TEXT),
            EntityField("metadata", FieldType.JSON),
        ],
        type=EntityType.SYSTEM,
    )


class MediaModule(Module):
    key = ModuleKey.MEDIA

    @classmethod
    def get_schema(cls) -> type[BaseModel]:
        return MediaConfig

    def overwrite_paths(self) -> list[Any]:
        # adapters are swapped whole, never merged
        return [re.compile(r"^\.?adapter$")]

    async def on_before_update(self, current: dict[str, Any], proposed: dict[str, Any]) -> dict[str, Any]:
        if proposed.get("enabled") and proposed.get("adapter") is None:
            raise ValidationVetoError("Media cannot be enabled without an adapter").with_context(
                module=self.key.value, path="adapter"
            )
        return proposed

    async def build(self, ctx: BuildContext) -> BuildResult:
        config = MediaConfig.model_validate(self.config)
        if not config.enabled:
            return BuildResult()

        result = ctx.helper.ensure_entity(media_entity(config.entity_name))
        ctx.helper.ensure_permissions(MEDIA_PERMISSIONS)

        router = APIRouter(tags=["media"])

        @router.get("/adapter")
        async def adapter() -> dict[str, Any]:
            return {"type": config.adapter.type if config.adapter else None}

        ctx.server.include_router(router, prefix=config.basepath)
        return result
