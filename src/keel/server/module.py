"""``server`` module: CORS settings and the health route of the runtime server."""

from __future__ import annotations

from typing import Any, Literal

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from keel.modules.base import BuildContext, BuildResult, Module, ModuleKey

ServerMethod = Literal["GET", "POST", "PATCH", "PUT", "DELETE"]

SERVER_METHODS: list[ServerMethod] = ["GET", "POST", "PATCH", "PUT", "DELETE"]
DEFAULT_HEADERS = ["Content-Type", "Content-Length", "Authorization", "Accept"]


class CorsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    origin: str = Field(default="*", description="Comma separated list of allowed origins")
    allow_methods: list[ServerMethod] = Field(default_factory=lambda: list(SERVER_METHODS))
    allow_headers: list[str] = Field(default_factory=lambda: list(DEFAULT_HEADERS))


class ServerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", title="Server")

    cors: CorsConfig = Field(default_factory=CorsConfig)


class ServerModule(Module):
    key = ModuleKey.SERVER

    @classmethod
    def get_schema(cls) -> type[BaseModel]:
        return ServerConfig

    def on_server_init(self, server: FastAPI) -> None:
        @server.get("/", include_in_schema=False)
        async def root() -> dict[str, Any]:
            return {"keel": "hello world!"}

    async def build(self, ctx: BuildContext) -> BuildResult:
        cors = ServerConfig.model_validate(self.config).cors
        origins = [o.strip() for o in cors.origin.split(",") if o.strip()]
        ctx.server.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=list(cors.allow_methods),
            allow_headers=list(cors.allow_headers),
        )

        base_path = getattr(ctx.server.state, "base_path", "")

        @ctx.server.get(f"{base_path}/health", tags=["health"])
        async def health() -> dict[str, Any]:
            return {"status": "ok", "entities": ctx.em.entity_names}

        return BuildResult()
