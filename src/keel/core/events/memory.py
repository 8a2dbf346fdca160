"""
In-memory event bus implementation.

Events are delivered immediately and never persisted. Sync subscribers run
first, one after another; async subscribers then run concurrently with their
failures logged.

Tags:
    keel-core, events, in-memory, asyncio
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from keel.core.events import Event, EventHandler, ListenerMode
from keel.core.logging import get_logger

__all__ = ["InMemoryEventBus"]

log = get_logger("keel.events")


@dataclass
class Subscription:
    """Internal subscription record."""

    id: str
    pattern: str
    handler: EventHandler
    mode: ListenerMode = "async"


class InMemoryEventBus:
    """In-process event bus.

    Example::

        bus = InMemoryEventBus()

        async def log_event(event: Event):
            print(f"Event: {event.event_type}")

        await bus.subscribe("*", log_event)
        await bus.publish(Event(event_type="config.saved", source="example"))
        # Output: Event: config.saved
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = asyncio.Lock()
        self._closed = False
        self._enabled = True

    @property
    def enabled(self) -> bool:
        return self._enabled and not self._closed

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    @contextmanager
    def muted(self) -> Iterator[InMemoryEventBus]:
        """Suppress delivery inside the block, restoring the previous state."""
        previous = self._enabled
        self._enabled = False
        try:
            yield self
        finally:
            self._enabled = previous

    async def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers.

        Raises whatever a ``sync`` subscriber raises.
        """
        if not self.enabled:
            log.debug("event_bus_muted", event_type=event.event_type)
            return

        async with self._lock:
            matching = [sub for sub in self._subscriptions.values() if event.matches(sub.pattern)]

        for sub in matching:
            if sub.mode == "sync":
                await sub.handler(event)

        asyncs = [sub for sub in matching if sub.mode == "async"]
        if not asyncs:
            return

        async def safe_call(sub: Subscription) -> None:
            try:
                await sub.handler(event)
            except Exception as e:
                log.warning(
                    "event_handler_error",
                    subscription_id=sub.id,
                    event_type=event.event_type,
                    error=str(e),
                )

        await asyncio.gather(*[safe_call(sub) for sub in asyncs])

    async def subscribe(
        self,
        event_type: str,
        handler: EventHandler,
        mode: ListenerMode = "async",
        id: str | None = None,
    ) -> str:
        """Subscribe to events matching a pattern.

        Args:
            event_type: Pattern to match (supports ``*`` and ``type.*``)
            handler: Async callback for matching events
            mode: ``sync`` or ``async``
            id: Stable id; an existing subscription with this id is kept

        Returns:
            Subscription ID
        """
        sub_id = id or f"sub_{uuid.uuid4().hex[:12]}"

        async with self._lock:
            if sub_id in self._subscriptions:
                log.debug("subscription_exists", subscription_id=sub_id)
                return sub_id
            self._subscriptions[sub_id] = Subscription(
                id=sub_id,
                pattern=event_type,
                handler=handler,
                mode=mode,
            )

        return sub_id

    async def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription."""
        async with self._lock:
            self._subscriptions.pop(subscription_id, None)

    async def close(self) -> None:
        """Mark bus as closed and clear subscriptions."""
        self._closed = True
        async with self._lock:
            self._subscriptions.clear()

    @property
    def subscription_count(self) -> int:
        """Number of active subscriptions."""
        return len(self._subscriptions)
