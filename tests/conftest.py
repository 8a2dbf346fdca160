"""
Shared pytest fixtures for keel tests.

Every test gets fresh ``KEEL_*`` settings pointing at an in-memory SQLite
database, and engine objects are built per test so no state leaks between
them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

import pytest
import structlog

from keel.core.config import KeelSettings, clear_settings_cache
from keel.data.connection import Connection
from keel.modules.manager import ModuleManagerOptions
from keel.modules.store import SqlConfigVersionStore
from keel.modules.versioned import VersionedConfigManager


@pytest.fixture(autouse=True)
def keel_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Isolate settings from the developer's environment and .env file."""
    monkeypatch.setenv("KEEL_DATABASE_URL", "sqlite://")
    monkeypatch.setenv("KEEL_SECRET_ENV_PREFIX", "KEEL_TEST_SECRET_")
    monkeypatch.setenv("KEEL_LOG_LEVEL", "WARNING")
    clear_settings_cache()
    yield
    clear_settings_cache()
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in list(root.handlers):
        if type(handler) is logging.StreamHandler:
            root.removeHandler(handler)


@pytest.fixture
def settings() -> KeelSettings:
    return KeelSettings(database_url="sqlite://", secret_env_prefix="KEEL_TEST_SECRET_")


@pytest.fixture
def connection() -> Iterator[Connection]:
    conn = Connection.from_url("sqlite://")
    yield conn
    conn.dispose()


@pytest.fixture
def store(connection: Connection) -> SqlConfigVersionStore:
    return SqlConfigVersionStore(connection)


@pytest.fixture
def make_manager(connection: Connection):
    """Factory for versioned managers sharing the test connection."""

    def factory(initial: dict[str, Any] | None = None, **options: Any) -> VersionedConfigManager:
        return VersionedConfigManager(
            connection,
            ModuleManagerOptions(initial=initial, **options),
        )

    return factory
