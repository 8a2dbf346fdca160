"""Tests for keel.core.events: Event matching and the in-memory bus."""

import pytest

from keel.core.events import Event
from keel.core.events.memory import InMemoryEventBus
from keel.modules.events import CONFIG_SAVED, config_event


class TestEventMatches:
    def test_patterns(self):
        event = Event(event_type="config.saved", source="modules")
        assert event.matches("*")
        assert event.matches("config.*")
        assert event.matches("config.saved")
        assert not event.matches("config.diff")
        assert not event.matches("app.*")

    def test_config_event_source(self):
        event = config_event(CONFIG_SAVED, version=3, diffs=0)
        assert event.source == "modules"
        assert event.payload == {"version": 3, "diffs": 0}


class TestInMemoryEventBus:
    @pytest.mark.asyncio
    async def test_publish_to_matching_subscribers(self):
        bus = InMemoryEventBus()
        received = []

        async def handler(event):
            received.append(event.event_type)

        await bus.subscribe("config.*", handler)
        await bus.publish(Event(event_type="config.saved", source="test"))
        await bus.publish(Event(event_type="app.built", source="test"))
        assert received == ["config.saved"]

    @pytest.mark.asyncio
    async def test_subscription_id_is_stable(self):
        bus = InMemoryEventBus()

        async def handler(event):
            pass

        first = await bus.subscribe("config.*", handler, id="sync-config")
        second = await bus.subscribe("config.*", handler, id="sync-config")
        assert first == second == "sync-config"
        assert bus.subscription_count == 1

    @pytest.mark.asyncio
    async def test_sync_handler_errors_propagate(self):
        bus = InMemoryEventBus()

        async def failing(event):
            raise RuntimeError("listener failed")

        await bus.subscribe("config.saved", failing, mode="sync")
        with pytest.raises(RuntimeError):
            await bus.publish(Event(event_type="config.saved", source="test"))

    @pytest.mark.asyncio
    async def test_async_handler_errors_are_logged(self):
        bus = InMemoryEventBus()
        received = []

        async def failing(event):
            raise RuntimeError("listener failed")

        async def ok(event):
            received.append(event)

        await bus.subscribe("config.saved", failing)
        await bus.subscribe("config.saved", ok)
        await bus.publish(Event(event_type="config.saved", source="test"))
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_muted_restores_state(self):
        bus = InMemoryEventBus()
        received = []

        async def handler(event):
            received.append(event)

        await bus.subscribe("*", handler)
        with bus.muted():
            assert not bus.enabled
            await bus.publish(Event(event_type="config.saved", source="test"))
        assert bus.enabled
        await bus.publish(Event(event_type="config.saved", source="test"))
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_close_disables(self):
        bus = InMemoryEventBus()
        await bus.close()
        assert not bus.enabled
