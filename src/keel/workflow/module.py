"""
``workflow`` module: named flows made of a trigger and tasks.

Only the configuration is managed here; a flow's ``start_task`` and
``responding_task`` must name one of its tasks.
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from keel.core.errors import ValidationVetoError
from keel.modules.base import BuildContext, BuildResult, Module, ModuleKey

FLOW_PERMISSIONS = ["workflow.flows.read", "workflow.flows.execute"]


class TriggerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["manual", "event", "http"] = "manual"
    config: dict[str, Any] = Field(default_factory=dict)


class TaskConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: str
    params: dict[str, Any] = Field(default_factory=dict)


class ConnectionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source: str
    target: str


class FlowConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    trigger: TriggerConfig = Field(default_factory=TriggerConfig)
    tasks: dict[str, TaskConfig] = Field(default_factory=dict)
    connections: dict[str, ConnectionConfig] = Field(default_factory=dict)
    start_task: str | None = None
    responding_task: str | None = None


class WorkflowConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", title="Workflow")

    basepath: str = "/api/flows"
    flows: dict[str, FlowConfig] = Field(default_factory=dict)


class WorkflowModule(Module):
    key = ModuleKey.WORKFLOW

    @classmethod
    def get_schema(cls) -> type[BaseModel]:
        return WorkflowConfig

    async def on_before_update(self, current: dict[str, Any], proposed: dict[str, Any]) -> dict[str, Any]:
        for name, flow in proposed.get("flows", {}).items():
            tasks = flow.get("tasks", {})
            for attr in ("start_task", "responding_task"):
                task = flow.get(attr)
                if task is not None and task not in tasks:
                    raise ValidationVetoError(
                        f"Flow {name!r}: {attr} {task!r} is not one of its tasks"
                    ).with_context(module=self.key.value, path=f"flows.{name}.{attr}")
        return proposed

    async def build(self, ctx: BuildContext) -> BuildResult:
        config = WorkflowConfig.model_validate(self.config)
        ctx.helper.ensure_permissions(FLOW_PERMISSIONS)

        def describe() -> list[dict[str, Any]]:
            return [
                {
                    "name": name,
                    "trigger": flow.trigger.type,
                    "tasks": list(flow.tasks),
                    "start_task": flow.start_task,
                }
                for name, flow in config.flows.items()
            ]

        router = APIRouter(tags=["workflow"])

        @router.get("")
        async def flows() -> list[dict[str, Any]]:
            return describe()

        ctx.server.include_router(router, prefix=config.basepath)

        @ctx.mcp.tool(name="list_flows", description="Configured flows with their trigger and tasks")
        async def list_flows() -> list[dict[str, Any]]:
            return describe()

        return BuildResult()
