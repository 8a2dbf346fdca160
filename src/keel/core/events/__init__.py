"""Event system for configuration lifecycle notifications.

Why This Package Exists
-----------------------
The configuration engine announces what it does (secrets extracted, config
updated, config saved, diff written) without knowing who listens. Plugins
such as the secrets/diff/config file writers subscribe by pattern and the
engine never imports them.

Subscriptions come in two modes:

``sync``
    Awaited in registration order inside ``publish``. A failing handler
    propagates to the publisher.
``async``
    Run concurrently after the sync handlers; failures are logged and do
    not reach the publisher.

Usage::

    from keel.core.events import Event
    from keel.core.events.memory import InMemoryEventBus

    bus = InMemoryEventBus()

    async def on_saved(event: Event):
        print(event.payload["version"])

    await bus.subscribe("config.*", on_saved)
    await bus.publish(Event(event_type="config.saved", source="modules", payload={"version": 3}))

Modules
-------
memory      InMemoryEventBus -- asyncio, single process
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, Protocol, runtime_checkable

__all__ = [
    "Event",
    "EventBus",
    "EventHandler",
    "ListenerMode",
]


# ── Event Model ──────────────────────────────────────────────────────────


@dataclass
class Event:
    """Event payload.

    Attributes:
        event_type: Dot-separated type (e.g., ``config.saved``)
        source: Origin component
        payload: Event-specific data
        timestamp: When the event occurred (UTC)
        correlation_id: Optional ID linking related events
        event_id: Unique event identifier
    """

    event_type: str
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    correlation_id: str | None = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def matches(self, pattern: str) -> bool:
        """Check if event type matches a pattern (supports wildcards).

        Examples:
            - ``config.*`` matches ``config.saved``, ``config.diff``
            - ``*`` matches everything
            - ``config.saved`` matches exactly ``config.saved``
        """
        if pattern == "*":
            return True
        if pattern.endswith(".*"):
            prefix = pattern[:-2]
            return self.event_type.startswith(prefix + ".")
        return self.event_type == pattern


# ── Type Aliases ─────────────────────────────────────────────────────────

EventHandler = Callable[[Event], Awaitable[None]]
ListenerMode = Literal["sync", "async"]


# ── EventBus Protocol ────────────────────────────────────────────────────


@runtime_checkable
class EventBus(Protocol):
    """Protocol for event bus implementations."""

    @property
    def enabled(self) -> bool: ...

    async def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers."""
        ...

    async def subscribe(
        self,
        event_type: str,
        handler: EventHandler,
        mode: ListenerMode = "async",
        id: str | None = None,
    ) -> str:
        """Subscribe to events matching a pattern.

        Args:
            event_type: Pattern to match (e.g., ``config.*``)
            handler: Async callback for matching events
            mode: ``sync`` (awaited, errors propagate) or ``async``
            id: Stable id; subscribing twice with the same id is a no-op

        Returns:
            Subscription ID for later unsubscription
        """
        ...

    async def unsubscribe(self, subscription_id: str) -> None: ...

    def enable(self) -> None: ...

    def disable(self) -> None: ...

    async def close(self) -> None: ...
