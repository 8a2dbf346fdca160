"""SQLAlchemy 2.0 ORM layer for keel.

Modules
-------
base        KeelBase (declarative base) + TimestampMixin
session     Engine factory, KeelSession, keel_session_factory
tables      ConfigRecord and ConfigType (configuration history table)
"""

from __future__ import annotations

from keel.core.orm.base import KeelBase, TimestampMixin
from keel.core.orm.session import KeelSession, create_keel_engine, keel_session_factory
from keel.core.orm.tables import CONFIG_TABLE, ConfigRecord, ConfigType

__all__ = [
    "KeelBase",
    "TimestampMixin",
    "create_keel_engine",
    "KeelSession",
    "keel_session_factory",
    "CONFIG_TABLE",
    "ConfigRecord",
    "ConfigType",
]
