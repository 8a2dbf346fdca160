"""keel core -- primitives shared by the configuration engine and its modules.

Architecture::

    errors.py          Structured error hierarchy (KeelError and subclasses)
    result.py          Ok / Err envelope for expected failures
    logging.py         structlog configuration and get_logger
    objects.py         Nested-path helpers (clone, deep_merge, get/set/remove)
    diff.py            Structural diff / apply between config trees
    secrets.py         Secret extraction, injection and runtime resolution
    events/            Event model, EventBus protocol, InMemoryEventBus
    orm/               SQLAlchemy 2.0 base, engine factory, config table
    config/            KeelSettings (pydantic-settings)
    transports/        FastMCP tool server scaffold
"""

from keel.core.errors import (
    ConfigError,
    ConfigNotFoundError,
    ErrorCategory,
    ErrorContext,
    KeelError,
    ValidationError,
)
from keel.core.result import Err, Ok, Result

__all__ = [
    "KeelError",
    "ConfigError",
    "ConfigNotFoundError",
    "ValidationError",
    "ErrorCategory",
    "ErrorContext",
    "Ok",
    "Err",
    "Result",
]
