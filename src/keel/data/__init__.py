"""Entity layer: connection, entities, entity manager and the data module.

Modules
-------
connection  Connection (SQLAlchemy engine wrapper)
entities    Field, Entity, FieldType, EntityType
manager     EntityManager, SchemaManager, ChangeSet, TableInfo
module      DataModule (``data`` config sub-tree)
"""

from keel.data.connection import Connection
from keel.data.entities import Entity, EntityType, Field, FieldType
from keel.data.manager import ChangeSet, EntityManager, SchemaManager, TableInfo

__all__ = [
    "Connection",
    "Entity",
    "EntityType",
    "Field",
    "FieldType",
    "EntityManager",
    "SchemaManager",
    "ChangeSet",
    "TableInfo",
]
