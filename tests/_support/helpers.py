"""Store and configuration helpers for tests."""

from __future__ import annotations

from typing import Any

from keel.core.orm import ConfigRecord, ConfigType
from keel.modules.store import SqlConfigVersionStore


def rows(store: SqlConfigVersionStore, *types: ConfigType) -> list[ConfigRecord]:
    """Store rows oldest first, optionally filtered by type."""
    return list(reversed(store.history(types or None)))


def posts_entity() -> dict[str, Any]:
    return {
        "fields": {
            "title": {"type": "text", "required": True},
            "status": {"type": "enum", "values": ["draft", "published"]},
        }
    }


def flow(start_task: str | None = "hello", **tasks: str) -> dict[str, Any]:
    """A flow config with ``tasks`` mapping task name to task type."""
    return {
        "trigger": {"type": "manual"},
        "tasks": {name: {"type": kind} for name, kind in (tasks or {"hello": "log"}).items()},
        "start_task": start_task,
    }
