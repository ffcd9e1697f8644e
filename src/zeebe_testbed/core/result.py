"""
Result envelope for operations whose failure is an expected outcome.

The readiness wait and command send both end in exactly one of two terminal
outcomes. Instead of raising for the expected failure, they return
``Ok(value)`` or ``Err(error)`` so the caller handles both branches
explicitly.

Examples:
    >>> Ok(42).unwrap()
    42
    >>> Err(ValueError("boom")).unwrap_or(0)
    0
    >>> Ok(10).map(lambda x: x * 2).unwrap()
    20

Usage:
    result = command.send(ctx)
    match result:
        case Ok(deployed):
            print(deployed.key)
        case Err(error):
            print(error.kind)

Tags:
    result-pattern, error-handling, testbed
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from zeebe_testbed.core.errors import TestbedError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Get value or default (always returns value for Ok)."""
        return self.value

    def unwrap_err(self) -> Exception:
        raise ValueError(f"called unwrap_err() on {self!r}")

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """Transform the value if Ok."""
        return Ok(f(self.value))

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        """Transform error if Err (no-op for Ok)."""
        return self

    def inspect(self, f: Callable[[T], None]) -> Result[T]:
        """Call f with value for side effects, return self."""
        f(self.value)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """
    Failed result containing an error.

    ``unwrap()`` re-raises the wrapped error, so an unchecked Err still fails
    loudly instead of passing a None downstream.
    """

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the error. Use only when you're sure it's Ok."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        """Get default since this is Err."""
        return default

    def unwrap_err(self) -> Exception:
        return self.error

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """No-op for Err."""
        return Err(self.error)

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        """Transform the error."""
        return Err(f(self.error))

    def inspect(self, f: Callable[[T], None]) -> Result[T]:
        """No-op for Err."""
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        if isinstance(self.error, TestbedError):
            return {"ok": False, "error": self.error.to_dict()}
        return {
            "ok": False,
            "error": {
                "error_type": type(self.error).__name__,
                "message": str(self.error),
            },
        }

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Type alias for Result
Result = Ok[T] | Err[T]


__all__ = ["Ok", "Err", "Result"]
