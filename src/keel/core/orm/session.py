"""Engine factory and session class used by ``keel.data.Connection``.

In-memory SQLite URLs get a ``StaticPool`` so the config table, the entity
tables and every session see the same database.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def is_memory_url(url: str) -> bool:
    return url in MEMORY_URLS or "mode=memory" in url


def create_keel_engine(url: str = "sqlite:///keel.db", *, echo: bool = False, **kwargs: Any) -> Engine:
    """Create the engine for ``url``; SQLite gets WAL (files only) and foreign keys."""
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, **kwargs)

    kwargs.setdefault("connect_args", {"check_same_thread": False})
    memory = is_memory_url(url)
    if memory:
        kwargs.setdefault("poolclass", StaticPool)
    engine = create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        if not memory:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


class KeelSession(Session):
    """Session whose objects stay readable after commit (``expire_on_commit=False``)."""

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def keel_session_factory(engine: Engine) -> sessionmaker[KeelSession]:
    return sessionmaker(bind=engine, class_=KeelSession, expire_on_commit=False)
