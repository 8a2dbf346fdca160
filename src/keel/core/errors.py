"""
Structured error types for the keel configuration engine.

Every failure the lifecycle engine can raise is a ``KeelError`` subclass
carrying a category, retry semantics, structured context and an optional
chained cause. Callers can decide how to react (recover, roll back, surface)
from the type alone.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure the engine distinguishes
    - **Explicit Retry Semantics:** Configuration errors are never retryable
    - **Rich Context:** Errors carry module key, version and path
    - **Error Chaining:** The original exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                          KeelError                              │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                 │
        │  ConfigError                    ValidationError                 │
        │  (CONFIG)                       (VALIDATION)                    │
        │     │                              │                            │
        │  ConfigNotFoundError            ValidationVetoError             │
        │  VersionMismatchError           SchemaRejectionError            │
        │  UnregisteredModuleError        RestrictedPathError             │
        │  ModuleNotFoundError            PathNotFoundError               │
        │  MutationNotAllowedError                                        │
        │  MigrationError                                                 │
        │                                                                 │
        │  FieldReplaceError, EntityNotFoundError (DATABASE)              │
        │  PermissionDeniedError (AUTH)                                   │
        └─────────────────────────────────────────────────────────────────┘

Propagation policy:
    Only ``ConfigNotFoundError`` is recovered locally (first-time insert).
    Everything else raised during ``save()`` or a safe mutation rolls the
    live modules back to the last stable snapshot and is then re-raised.

Tags:
    error-handling, exception-hierarchy, configuration, keel-core
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DATABASE = "DATABASE"  # Store, entity layer
    VALIDATION = "VALIDATION"  # Schema, veto, path rules
    CONFIG = "CONFIG"  # Missing config, version, registry
    AUTH = "AUTH"  # Permission checks
    INTERNAL = "INTERNAL"  # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        module: Module key the error relates to (``auth``, ``data``, ...)
        version: Configuration version involved
        path: Dotted config path involved
        metadata: Additional key-value pairs
    """

    module: str | None = None
    version: int | None = None
    path: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["module", "version", "path"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class KeelError(Exception):
    """
    Base exception for all keel errors.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    sensible defaults for their domain.

    Examples:
        >>> error = KeelError("boom")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(module="auth").context.module
        'auth'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> KeelError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ConfigError("Broken").with_context(module="media", version=3)
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(KeelError):
    """
    Configuration lifecycle error.

    Never retryable - the configuration or the store must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class ConfigNotFoundError(ConfigError):
    """No ``config`` row exists in the store yet (fresh install)."""

    def __init__(self, message: str = "no config found"):
        super().__init__(message)


class VersionMismatchError(ConfigError):
    """A provided configuration version does not match the target version."""

    def __init__(self, given: int, expected: int):
        self.given = given
        self.expected = expected
        super().__init__(
            f"Given version ({given}) and current version ({expected}) do not match.",
            context=ErrorContext(version=given),
        )


class UnregisteredModuleError(ConfigError):
    """A diff references a module key that is not registered."""

    def __init__(self, module: str, diffs: list[dict[str, Any]] | None = None):
        self.module = module
        self.diffs = diffs or []
        super().__init__(
            f"Diff references unregistered module: {module!r}",
            context=ErrorContext(module=module, metadata={"diff_count": len(self.diffs)}),
        )


class ModuleNotFoundError(ConfigError):  # noqa: A001
    """A module key was requested that the manager does not own."""

    def __init__(self, module: str):
        self.module = module
        super().__init__(f'Module "{module}" doesn\'t exist', context=ErrorContext(module=module))


class MutationNotAllowedError(ConfigError):
    """Safe mutation proxies only expose set/patch/overwrite/remove."""

    def __init__(self, method: str, module: str | None = None):
        self.method = method
        super().__init__(f"Method {method} is not allowed", context=ErrorContext(module=module))


class MigrationError(ConfigError):
    """The migration chain is broken or asked to walk backwards."""

    pass


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(KeelError):
    """
    Configuration validation error.

    Never retryable - the proposed configuration must be changed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class ValidationVetoError(ValidationError):
    """A module's ``on_before_update`` rejected a proposed change."""

    pass


class SchemaRejectionError(ValidationError):
    """A configuration value failed schema validation."""

    def __init__(
        self,
        message: str,
        *,
        errors: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.errors:
            result["errors"] = self.errors
        return result


class RestrictedPathError(ValidationError):
    """A mutation touched a path the module restricts."""

    def __init__(self, path: str, module: str | None = None):
        self.path = path
        super().__init__(
            f'Path "{path}" is restricted',
            context=ErrorContext(module=module, path=path),
        )


class PathNotFoundError(ValidationError):
    """A mutation referenced a path that does not exist."""

    def __init__(self, path: str, module: str | None = None):
        self.path = path
        super().__init__(
            f'Path "{path}" does not exist',
            context=ErrorContext(module=module, path=path),
        )


# =============================================================================
# ENTITY LAYER ERRORS
# =============================================================================


class FieldReplaceError(KeelError):
    """A derived entity field could not be replaced. Returned in ``Err``."""

    default_category = ErrorCategory.DATABASE

    def __init__(self, entity: str, field_name: str, reason: str):
        self.entity = entity
        self.field_name = field_name
        super().__init__(
            f"Cannot replace field {entity}.{field_name}: {reason}",
            context=ErrorContext(path=f"{entity}.{field_name}"),
        )


class EntityNotFoundError(KeelError):
    """An entity was requested that the entity manager does not hold."""

    default_category = ErrorCategory.DATABASE

    def __init__(self, entity: str):
        self.entity = entity
        super().__init__(f'Entity "{entity}" not found', context=ErrorContext(path=entity))


class EntityExistsError(KeelError):
    default_category = ErrorCategory.DATABASE

    def __init__(self, entity: str):
        self.entity = entity
        super().__init__(f'Entity "{entity}" already exists', context=ErrorContext(path=entity))


# =============================================================================
# AUTHORIZATION ERRORS
# =============================================================================


class PermissionDeniedError(KeelError):
    """A role lacks a permission the guard was asked to enforce."""

    default_category = ErrorCategory.AUTH

    def __init__(self, permission: str, role: str | None = None):
        self.permission = permission
        self.role = role
        super().__init__(
            f'Permission "{permission}" not granted to role {role!r}',
            context=ErrorContext(metadata={"permission": permission, "role": role}),
        )


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "KeelError",
    "ConfigError",
    "ConfigNotFoundError",
    "VersionMismatchError",
    "UnregisteredModuleError",
    "ModuleNotFoundError",
    "MutationNotAllowedError",
    "MigrationError",
    "ValidationError",
    "ValidationVetoError",
    "SchemaRejectionError",
    "RestrictedPathError",
    "PathNotFoundError",
    "FieldReplaceError",
    "EntityNotFoundError",
    "EntityExistsError",
    "PermissionDeniedError",
]
