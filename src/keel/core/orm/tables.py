"""Mapped tables owned by the configuration engine."""

from __future__ import annotations

import enum
from typing import Any

from sqlalchemy import JSON, Enum, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from keel.core.orm.base import KeelBase, TimestampMixin

CONFIG_TABLE = "__keel_config"


class ConfigType(str, enum.Enum):
    """Kind of a persisted configuration row."""

    CONFIG = "config"
    DIFF = "diff"
    BACKUP = "backup"
    SECRETS = "secrets"


class ConfigRecord(TimestampMixin, KeelBase):
    """One row of configuration history.

    ``config`` rows hold the authoritative tree for a version, ``diff`` rows
    the change lists applied under an unchanged version, ``backup`` rows the
    tree superseded by a version bump, ``secrets`` rows the extracted secret
    map.
    """

    __tablename__ = CONFIG_TABLE
    __table_args__ = (Index("ix_keel_config_type_version", "type", "version"),)
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[ConfigType] = mapped_column(
        Enum(ConfigType, values_callable=lambda e: [m.value for m in e], native_enum=False, length=16),
        nullable=False,
    )
    json: Mapped[Any] = mapped_column(JSON, nullable=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "type": self.type.value,
            "json": self.json,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"ConfigRecord(id={self.id}, version={self.version}, type={self.type.value})"
