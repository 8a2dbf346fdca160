"""
``Ok`` / ``Err`` envelope for calls whose failure the caller is expected to
handle.

The engine raises ``KeelError`` subclasses almost everywhere. Swapping the
options of a derived enum field is the exception: the auth module tries to
replace the ``role`` and ``strategy`` options of the users entity on every
build, and an entity without such a field is an outcome it logs and moves
past. ``Entity.replace_field_enum`` therefore returns ``Result[Field]``.

    >>> Ok(3).map(lambda v: v + 1).unwrap()
    4
    >>> Err(ValueError("no field")).unwrap_or("kept")
    'kept'
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from keel.core.errors import KeelError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Ok(f(self.value))

    def inspect_err(self, f: Callable[[Exception], None]) -> Result[T]:
        return self

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "value": self.value}


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """A failed call. ``unwrap`` raises the carried error."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Err(self.error)

    def inspect_err(self, f: Callable[[Exception], None]) -> Result[T]:
        """Run ``f`` on the error (typically to log it) and return self."""
        f(self.error)
        return self

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.error, KeelError):
            return {"ok": False, "error": self.error.to_dict()}
        return {"ok": False, "error": {"error_type": type(self.error).__name__, "message": str(self.error)}}


Result = Ok[T] | Err[T]


__all__ = ["Ok", "Err", "Result"]
