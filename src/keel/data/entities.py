"""Entities and their fields.

An ``Entity`` is a named set of typed fields that maps to one SQLAlchemy
``Table``. Entities are declared by the data module from configuration and
registered by other modules as *system* entities (users, media).
"""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, MetaData, Table, Text
from sqlalchemy.types import TypeEngine

from keel.core.errors import FieldReplaceError
from keel.core.result import Err, Ok, Result

PRIMARY_FIELD = "id"


class FieldType(str, enum.Enum):
    TEXT = "text"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    JSON = "json"
    ENUM = "enum"


_SA_TYPES: dict[FieldType, type[TypeEngine[Any]]] = {
    FieldType.TEXT: Text,
    FieldType.NUMBER: Float,
    FieldType.INTEGER: Integer,
    FieldType.BOOLEAN: Boolean,
    FieldType.DATE: DateTime,
    FieldType.JSON: JSON,
    FieldType.ENUM: Text,
}


class EntityType(str, enum.Enum):
    REGULAR = "regular"
    SYSTEM = "system"


@dataclass(frozen=True)
class Field:
    """One typed column of an entity. ``values`` holds the options of an enum."""

    name: str
    type: FieldType = FieldType.TEXT
    required: bool = False
    values: tuple[str, ...] = ()
    default: Any = None

    def column(self, *, nullable: bool | None = None) -> Column[Any]:
        return Column(
            self.name,
            _SA_TYPES[self.type](),
            nullable=(not self.required) if nullable is None else nullable,
            default=self.default,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value, "required": self.required}
        if self.values:
            data["values"] = list(self.values)
        if self.default is not None:
            data["default"] = self.default
        return data


@dataclass
class Entity:
    """A named table definition.

    Example::

        users = Entity("users", [Field("email", required=True)], type=EntityType.SYSTEM)
        users.to_table(MetaData())
    """

    name: str
    fields: list[Field] = field(default_factory=list)
    type: EntityType = EntityType.REGULAR

    def field(self, name: str) -> Field | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def has_field(self, name: str) -> bool:
        return self.field(name) is not None

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def add_field(self, new: Field) -> None:
        if self.has_field(new.name):
            raise ValueError(f"Field {self.name}.{new.name} already exists")
        self.fields.append(new)

    def replace_field(self, new: Field) -> Result[Field]:
        for i, existing in enumerate(self.fields):
            if existing.name == new.name:
                self.fields[i] = new
                return Ok(new)
        return Err(FieldReplaceError(self.name, new.name, "field does not exist"))

    def replace_field_enum(self, name: str, values: list[str] | tuple[str, ...]) -> Result[Field]:
        """Swap the options of an enum field. Never raises."""
        existing = self.field(name)
        if existing is None:
            return Err(FieldReplaceError(self.name, name, "field does not exist"))
        if existing.type is not FieldType.ENUM:
            return Err(FieldReplaceError(self.name, name, f"field is {existing.type.value}, not enum"))
        if not values:
            return Err(FieldReplaceError(self.name, name, "enum needs at least one value"))
        default = existing.default if existing.default in values else None
        return self.replace_field(dataclasses.replace(existing, values=tuple(values), default=default))

    def merge(self, other: Entity) -> bool:
        """Add fields of ``other`` missing here. Returns whether anything changed."""
        changed = False
        for f in other.fields:
            if not self.has_field(f.name):
                self.fields.append(f)
                changed = True
        return changed

    def to_table(self, metadata: MetaData) -> Table:
        columns = [Column(PRIMARY_FIELD, Integer, primary_key=True, autoincrement=True)]
        columns.extend(f.column() for f in self.fields if f.name != PRIMARY_FIELD)
        return Table(self.name, metadata, *columns)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "fields": {f.name: f.to_dict() for f in self.fields},
        }
