"""
Configuration version store.

Persists ``ConfigRecord`` rows (``config``, ``diff``, ``backup``, ``secrets``)
in the ``__keel_config`` table. Rows are never deleted; the history doubles
as an audit log.

Each write commits on its own unless it runs inside ``transaction()``, where
all writes share one session and commit or roll back together.

Tags:
    persistence, versioning, sqlalchemy, keel-modules
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import inspect, select

from keel.core.logging import get_logger
from keel.core.orm import ConfigRecord, ConfigType, KeelSession
from keel.data.connection import Connection

log = get_logger(__name__)


@runtime_checkable
class ConfigVersionStore(Protocol):
    def fetch_latest(self, types: Iterable[ConfigType]) -> dict[ConfigType, ConfigRecord]:
        """Per requested type the highest-version row; absent types omitted."""
        ...

    def insert(self, record: ConfigRecord) -> ConfigRecord: ...

    def insert_many(self, records: list[ConfigRecord]) -> list[ConfigRecord]: ...

    def update_by_id(self, record_id: int, **patch: Any) -> None: ...

    def sync(self, force: bool = False) -> bool: ...

    def transaction(self) -> AbstractContextManager[None]: ...

    def history(
        self,
        types: Iterable[ConfigType] | None = None,
        version: int | None = None,
    ) -> list[ConfigRecord]: ...


class SqlConfigVersionStore:
    """``ConfigVersionStore`` over a SQLAlchemy engine."""

    def __init__(self, connection: Connection):
        self.connection = connection
        self._session: KeelSession | None = None

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group writes into one commit. Nested calls join the outer transaction."""
        if self._session is not None:
            yield
            return
        with self.connection.session() as session:
            self._session = session
            try:
                yield
            finally:
                self._session = None

    @contextmanager
    def _scope(self) -> Iterator[KeelSession]:
        if self._session is not None:
            yield self._session
            return
        with self.connection.session() as session:
            yield session

    def exists(self) -> bool:
        return inspect(self.connection.engine).has_table(ConfigRecord.__tablename__)

    def sync(self, force: bool = False) -> bool:
        """Create the table (and its index) if missing. Returns whether it was created."""
        if self.exists() and not force:
            return False
        created = not self.exists()
        ConfigRecord.__table__.create(self.connection.engine, checkfirst=True)
        if created:
            log.info("config_store.created", table=ConfigRecord.__tablename__)
        return created

    def fetch_latest(self, types: Iterable[ConfigType]) -> dict[ConfigType, ConfigRecord]:
        wanted = list(types)
        if not self.exists():
            return {}

        stmt = (
            select(ConfigRecord)
            .where(ConfigRecord.type.in_(wanted))
            .order_by(ConfigRecord.version.desc(), ConfigRecord.id.desc())
        )
        latest: dict[ConfigType, ConfigRecord] = {}
        with self.connection.session() as session:
            for record in session.scalars(stmt):
                latest.setdefault(record.type, record)
        return latest

    def insert(self, record: ConfigRecord) -> ConfigRecord:
        return self.insert_many([record])[0]

    def insert_many(self, records: list[ConfigRecord]) -> list[ConfigRecord]:
        with self._scope() as session:
            session.add_all(records)
            session.flush()
        log.debug(
            "config_store.inserted",
            rows=[(r.type.value, r.version) for r in records],
        )
        return records

    def update_by_id(self, record_id: int, **patch: Any) -> None:
        with self._scope() as session:
            record = session.get(ConfigRecord, record_id)
            if record is None:
                raise LookupError(f"config record {record_id} not found")
            for key, value in patch.items():
                setattr(record, key, value)
        log.debug("config_store.updated", id=record_id, fields=sorted(patch))

    def history(
        self,
        types: Iterable[ConfigType] | None = None,
        version: int | None = None,
    ) -> list[ConfigRecord]:
        """Rows newest first, optionally filtered by type and version."""
        if not self.exists():
            return []
        stmt = select(ConfigRecord).order_by(ConfigRecord.id.desc())
        if types is not None:
            stmt = stmt.where(ConfigRecord.type.in_(list(types)))
        if version is not None:
            stmt = stmt.where(ConfigRecord.version == version)
        with self.connection.session() as session:
            return list(session.scalars(stmt))
