"""
System router: read and change the module configuration.

GET  /system/config
GET  /system/config/{module}
GET  /system/schema
POST /system/config/{action}/{module}     action: set | patch | overwrite | remove

Changes go through ``mutate_config_safe`` so a rejected change leaves the
running configuration and the store untouched. Rejections answer 400 with
the error's ``to_dict()`` (see ``keel.api.app``).

Tags:
    api, system, configuration, keel
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from keel.app import App

router = APIRouter()

MutationAction = Literal["set", "patch", "overwrite", "remove"]


def get_keel_app(request: Request) -> App:
    return request.app.state.keel


KeelApp = Annotated[App, Depends(get_keel_app)]


class MutationBody(BaseModel):
    """Request body of a configuration change."""

    path: str = Field(default="", description="Dotted path inside the module config")
    value: Any = None


@router.get("/config")
async def get_config(app: KeelApp) -> dict[str, Any]:
    """The whole configuration tree with secrets blanked."""
    return app.to_json()


@router.get("/config/{module}")
async def get_module_config(module: str, app: KeelApp) -> dict[str, Any]:
    return {"module": module, "config": app.module(module).to_json()}


@router.get("/schema")
async def get_schema(app: KeelApp) -> dict[str, Any]:
    return app.get_schema()


@router.post("/config/{action}/{module}")
async def mutate_config(
    action: MutationAction,
    module: str,
    body: MutationBody,
    app: KeelApp,
) -> dict[str, Any]:
    proxy = app.modules.mutate_config_safe(module)
    if action == "set":
        await proxy.set(body.value)
    elif action == "remove":
        await proxy.remove(body.path)
    else:
        await getattr(proxy, action)(body.path, body.value)

    return {"success": True, "module": module, "config": app.module(module).to_json()}
