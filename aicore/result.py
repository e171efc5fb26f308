"""Result type for operations that report failure as data.

Every public operation of the invocation layer returns a ``Result`` instead of
raising. Success carries a value, failure carries a typed error (usually a
``ChainError``).

    result = build_tools(tools)
    if result.error:
        return result
    tool_set = result.unwrap()
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar, cast

T = TypeVar("T")  # Success type
E = TypeVar("E", bound=BaseException)  # Error type
U = TypeVar("U")  # Mapped success type


class Result(Generic[T, E]):
    """Discriminated union of a success value or an error value.

    Build instances through ``Result.ok`` and ``Result.err``. Instances are
    immutable; ``map`` and ``flat_map`` return new results.
    """

    __slots__ = ("_value", "_error")

    def __init__(self, value: T | None = None, error: E | None = None) -> None:
        """Private constructor. Use Result.ok() or Result.err() instead."""
        self._value = value
        self._error = error

    @staticmethod
    def ok(value: T) -> Result[T, E]:
        """Wrap a success value."""
        return Result(value=value)

    @staticmethod
    def err(error: E) -> Result[T, E]:
        """Wrap an error value."""
        if error is None:
            raise ValueError("Result.err() requires an error value")
        return Result(error=error)

    @property
    def is_ok(self) -> bool:
        return self._error is None

    @property
    def value(self) -> T | None:
        return self._value

    @property
    def error(self) -> E | None:
        return self._error

    def unwrap(self) -> T:
        """Extract the success value, raising the carried error on failure."""
        if self._error is not None:
            raise self._error
        return cast(T, self._value)

    def unwrap_or(self, default: T) -> T:
        """Extract the success value or return default."""
        return default if self._error is not None else cast(T, self._value)

    def map(self, f: Callable[[T], U]) -> Result[U, E]:
        """Map a function over the success value."""
        if self._error is not None:
            return Result(error=self._error)
        return Result(value=f(cast(T, self._value)))

    def flat_map(self, f: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Chain another result-returning step, short-circuiting on failure."""
        if self._error is not None:
            return Result(error=self._error)
        return f(cast(T, self._value))

    def __bool__(self) -> bool:
        return self.is_ok

    def __repr__(self) -> str:
        if self._error is not None:
            return f"Result.err({self._error!r})"
        return f"Result.ok({self._value!r})"


# Alias used in signatures where both sides of the union are spelled out.
TypedResult = Result
