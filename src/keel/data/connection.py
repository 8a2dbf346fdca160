"""Database connection shared by the store, the entity layer and modules."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from keel.core.logging import get_logger
from keel.core.orm import KeelSession, create_keel_engine, keel_session_factory

log = get_logger(__name__)


class Connection:
    """Thin wrapper around a SQLAlchemy engine.

    Example::

        conn = Connection.from_url("sqlite://")
        with conn.session() as session:
            session.add(record)
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._sessions = keel_session_factory(engine)
        self._initialized = False

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False) -> Connection:
        return cls(create_keel_engine(url, echo=echo))

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect(self) -> str:
        return self._engine.dialect.name

    def init(self) -> None:
        """Open and release one connection so misconfiguration fails early."""
        if self._initialized:
            return
        with self._engine.connect():
            pass
        self._initialized = True
        log.debug("connection.initialized", dialect=self.dialect)

    @contextmanager
    def session(self) -> Iterator[KeelSession]:
        """Transactional session scope: commit on success, roll back on error."""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def table_names(self) -> list[str]:
        return inspect(self._engine).get_table_names()

    def dispose(self) -> None:
        self._engine.dispose()
