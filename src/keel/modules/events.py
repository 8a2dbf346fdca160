"""Event types published by the module managers.

Payloads never carry secret values except ``config.secrets_extracted``, which
exists so a plugin can write them somewhere safe.
"""

from __future__ import annotations

from typing import Any

from keel.core.events import Event

SOURCE = "modules"

CONFIG_SECRETS_EXTRACTED = "config.secrets_extracted"
CONFIG_UPDATED = "config.updated"
CONFIG_SAVED = "config.saved"
CONFIG_DIFF = "config.diff"

APP_BUILT = "app.built"
APP_CONFIG_UPDATED = "app.config_updated"


def config_event(event_type: str, **payload: Any) -> Event:
    return Event(event_type=event_type, source=SOURCE, payload=payload)


__all__ = [
    "SOURCE",
    "CONFIG_SECRETS_EXTRACTED",
    "CONFIG_UPDATED",
    "CONFIG_SAVED",
    "CONFIG_DIFF",
    "APP_BUILT",
    "APP_CONFIG_UPDATED",
    "config_event",
]
