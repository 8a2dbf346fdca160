"""
Entity manager and schema synchronisation.

The entity manager is rebuilt (cleared) on every context rebuild and refilled
by the modules during ``build()``. ``schema().sync()`` then reconciles the
live database with the registered entities.

Sync rules:
    - missing tables are created
    - missing columns are added (always nullable)
    - unknown tables are dropped only with ``drop=True``
    - tables prefixed ``__`` are internal and never touched
    - without ``force`` nothing is executed, only the plan is returned

Tags:
    entities, schema, sync, sqlalchemy, keel-data
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import MetaData, Table, func, inspect, select, text
from sqlalchemy.schema import CreateColumn

from keel.core.errors import EntityExistsError, EntityNotFoundError
from keel.core.events import Event, EventBus
from keel.core.logging import get_logger
from keel.data.connection import Connection
from keel.data.entities import Entity

log = get_logger(__name__)

INTERNAL_PREFIX = "__"


@dataclass
class ChangeSet:
    """Planned or executed schema changes."""

    create: list[str] = field(default_factory=list)
    add_columns: dict[str, list[str]] = field(default_factory=dict)
    drop: list[str] = field(default_factory=list)
    applied: bool = False

    def __bool__(self) -> bool:
        return bool(self.create or self.add_columns or self.drop)

    def touches(self, entity: str) -> bool:
        return entity in self.create or entity in self.add_columns

    def to_dict(self) -> dict[str, Any]:
        return {
            "create": list(self.create),
            "add_columns": {k: list(v) for k, v in self.add_columns.items()},
            "drop": list(self.drop),
            "applied": self.applied,
        }


@dataclass(frozen=True)
class TableInfo:
    name: str
    columns: tuple[str, ...]

    @property
    def internal(self) -> bool:
        return self.name.startswith(INTERNAL_PREFIX)


class SchemaManager:
    """Compares registered entities with the live database."""

    def __init__(self, em: EntityManager):
        self.em = em

    @property
    def engine(self):
        return self.em.connection.engine

    def introspect(self) -> list[TableInfo]:
        inspector = inspect(self.engine)
        return [
            TableInfo(name, tuple(col["name"] for col in inspector.get_columns(name)))
            for name in sorted(inspector.get_table_names())
        ]

    def plan(self, *, drop: bool = False) -> ChangeSet:
        live = {info.name: info for info in self.introspect()}
        changes = ChangeSet()

        for entity in self.em.entities:
            info = live.get(entity.name)
            if info is None:
                changes.create.append(entity.name)
                continue
            missing = [f.name for f in entity.fields if f.name not in info.columns and f.name != "id"]
            if missing:
                changes.add_columns[entity.name] = missing

        if drop:
            known = set(self.em.entity_names)
            changes.drop = [
                name for name, info in live.items() if not info.internal and name not in known
            ]
        return changes

    def sync(self, *, force: bool = False, drop: bool = False) -> ChangeSet:
        changes = self.plan(drop=drop)
        if not force or not changes:
            return changes

        metadata = MetaData()
        tables: dict[str, Table] = {e.name: e.to_table(metadata) for e in self.em.entities}

        with self.engine.begin() as conn:
            for name in changes.create:
                tables[name].create(conn)
            for name, columns in changes.add_columns.items():
                entity = self.em.entity(name)
                for column_name in columns:
                    column = entity.field(column_name).column(nullable=True)
                    Table(name, MetaData(), column)
                    ddl = CreateColumn(column).compile(dialect=conn.dialect)
                    conn.execute(text(f'ALTER TABLE "{name}" ADD COLUMN {ddl}'))
            for name in changes.drop:
                Table(name, MetaData()).drop(conn)

        changes.applied = True
        log.info("schema.synced", **changes.to_dict())
        return changes


class EntityManager:
    """Registry of entities bound to a connection."""

    def __init__(
        self,
        connection: Connection,
        entities: list[Entity] | None = None,
        event_bus: EventBus | None = None,
        *,
        emit_events: bool = True,
    ):
        self.connection = connection
        self.event_bus = event_bus
        self.emit_events = emit_events
        self._entities: dict[str, Entity] = {}
        for entity in entities or []:
            self.add_entity(entity)

    @property
    def entities(self) -> list[Entity]:
        return list(self._entities.values())

    @property
    def entity_names(self) -> list[str]:
        return list(self._entities)

    def has_entity(self, name: str) -> bool:
        return name in self._entities

    def entity(self, name: str) -> Entity:
        try:
            return self._entities[name]
        except KeyError:
            raise EntityNotFoundError(name) from None

    def add_entity(self, entity: Entity) -> Entity:
        if entity.name in self._entities:
            raise EntityExistsError(entity.name)
        self._entities[entity.name] = entity
        return entity

    def ensure_entity(self, entity: Entity) -> bool:
        """Register ``entity`` or merge its fields into the existing one.

        Returns whether the registry changed.
        """
        existing = self._entities.get(entity.name)
        if existing is None:
            self._entities[entity.name] = copy.deepcopy(entity)
            return True
        return existing.merge(entity)

    def clear(self) -> EntityManager:
        self._entities.clear()
        return self

    def fork(self) -> EntityManager:
        """A copy sharing the connection with events muted."""
        return EntityManager(
            self.connection,
            [copy.deepcopy(e) for e in self.entities],
            self.event_bus,
            emit_events=False,
        )

    def schema(self) -> SchemaManager:
        return SchemaManager(self)

    async def emit(self, event_type: str, payload: dict[str, Any]) -> None:
        if self.emit_events and self.event_bus is not None:
            await self.event_bus.publish(Event(event_type=event_type, source="data", payload=payload))

    # ── Rows ─────────────────────────────────────────────────────────

    def insert(self, entity_name: str, values: dict[str, Any]) -> int:
        """Insert one row and return its id."""
        table = self.entity(entity_name).to_table(MetaData())
        with self.connection.engine.begin() as conn:
            result = conn.execute(table.insert().values(**values))
            return int(result.inserted_primary_key[0])

    async def insert_one(self, entity_name: str, values: dict[str, Any]) -> int:
        row_id = self.insert(entity_name, values)
        await self.emit("data.record.inserted", {"entity": entity_name, "id": row_id})
        return row_id

    def count(self, entity_name: str) -> int:
        table = self.entity(entity_name).to_table(MetaData())
        with self.connection.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(table)).scalar_one()
