"""Result wrapper returned by components that must not raise.

A ``Result`` holds either a value or a ``FirexError``. Callers check
``is_ok``/``is_err`` or call ``unwrap()`` to get the value or raise the error.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from .client.exceptions import FirexError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of an operation: a value on success, an error otherwise."""

    value: Optional[T] = None
    error: Optional[FirexError] = None

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @property
    def is_err(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        """Return the value, raising the carried error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def ok(value: T = None) -> "Result[T]":
    return Result(value=value)


def err(error: FirexError) -> "Result":
    return Result(error=error)
