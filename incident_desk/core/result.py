"""
Result envelope for expected failures.

Configuration reads return ``Ok(value)`` or ``Err(error)`` so the caller
decides which default applies instead of catching a generic exception.

Usage:
    result = await repository.load_threshold_config()
    if result.is_err():
        logger.warning(f"Using defaults: {result.error}")
    overrides = result.unwrap_or({})
"""

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union


T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> "Result[U]":
        return Ok(f(self.value))

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True)
class Err(Generic[T]):
    """Failed result containing the error that caused it."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the error. Use only when you're sure it's Ok."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[T], U]) -> "Result[U]":
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Union[Ok[T], Err[T]]
