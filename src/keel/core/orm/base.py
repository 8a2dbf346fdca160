"""Declarative base and the timestamp mixin shared by keel's own tables.

Only engine-owned tables (the ``__keel_config`` history) are mapped here;
user entities are plain ``Table`` objects built by ``keel.data``.
"""

from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class KeelBase(DeclarativeBase):
    type_annotation_map = {
        str: Text,
        int: Integer,
        datetime.datetime: DateTime,
        dict[str, Any]: JSON,
    }


class TimestampMixin:
    """``created_at`` set on insert, ``updated_at`` refreshed on every update."""

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.current_timestamp(),
    )
    updated_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime,
        nullable=True,
        server_default=func.current_timestamp(),
        onupdate=func.current_timestamp(),
    )
