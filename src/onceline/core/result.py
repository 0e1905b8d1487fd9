"""Typed Result container used at every storage and assistant boundary.

Store adapters never raise for I/O problems; they return ``Err(StorageError)``
and let the engine decide, per operation, whether to propagate, log or
substitute a fallback. This module provides the small sum type for that:

- ``Ok(value)`` / ``Err(error)`` variants,
- combinators: ``map``, ``map_err``, ``flat_map``,
- helpers: ``unwrap``, ``unwrap_err``, ``get_or``, ``raise_if_err``.

Example
-------
>>> from onceline.core.result import ok, err, Result
>>> def parse_year(x: str) -> Result[int, str]:
...     return ok(int(x)) if x.isdigit() else err("not a year")
>>> ok("1987").flat_map(parse_year).unwrap()
1987
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar, cast

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E")
F = TypeVar("F")


class Result(Generic[T, E]):
    """Either a success (`Ok[T]`) or a failure (`Err[E]`)."""

    def is_ok(self) -> bool:
        """Return ``True`` for an :class:`Ok` value."""
        return isinstance(self, Ok)

    def is_err(self) -> bool:
        """Return ``True`` for an :class:`Err` value."""
        return isinstance(self, Err)

    def unwrap(self) -> T:
        """Return the success value, raising ``RuntimeError`` on ``Err``.

        Callers that want the error itself raised should use
        :meth:`raise_if_err` instead.
        """
        if isinstance(self, Ok):
            return cast(Ok[T, E], self).value
        raise RuntimeError(f"Attempted to unwrap Err: {self!r}")

    def unwrap_err(self) -> E:
        """Return the error payload, raising ``RuntimeError`` on ``Ok``."""
        if isinstance(self, Err):
            return cast(Err[T, E], self).error
        raise RuntimeError(f"Attempted to unwrap_err on Ok: {self!r}")

    def get_or(self, default: T) -> T:
        """Return the success value, or ``default`` on ``Err``."""
        if isinstance(self, Ok):
            return cast(Ok[T, E], self).value
        return default

    def raise_if_err(self) -> T:
        """Return the success value; raise the error payload if it is an exception.

        Non-exception payloads are wrapped in ``RuntimeError``.
        """
        if isinstance(self, Ok):
            return cast(Ok[T, E], self).value
        error = cast(Err[T, E], self).error
        if isinstance(error, BaseException):
            raise error
        raise RuntimeError(str(error))

    def map(self, fn: Callable[[T], U]) -> Result[U, E]:
        """Apply ``fn`` to the success value; propagate the error unchanged."""
        if isinstance(self, Ok):
            return Ok(fn(cast(Ok[T, E], self).value))
        return cast(Result[U, E], self)

    def map_err(self, fn: Callable[[E], F]) -> Result[T, F]:
        """Apply ``fn`` to the error value; propagate success unchanged."""
        if isinstance(self, Err):
            return Err(fn(cast(Err[T, E], self).error))
        return cast(Result[T, F], self)

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Chain a computation that already returns a :class:`Result`."""
        if isinstance(self, Ok):
            return fn(cast(Ok[T, E], self).value)
        return cast(Result[U, E], self)

    def __repr__(self) -> str:  # pragma: no cover - trivial representation
        if isinstance(self, Ok):
            return f"Ok({cast(Ok[T, E], self).value!r})"
        if isinstance(self, Err):
            return f"Err({cast(Err[T, E], self).error!r})"
        return "Result(?)"


@dataclass(frozen=True)
class Ok(Result[T, E]):
    """Successful result wrapping a value of type ``T``."""

    value: T


@dataclass(frozen=True)
class Err(Result[T, E]):
    """Failed result wrapping an error payload of type ``E``."""

    error: E


def ok(value: T) -> Result[T, E]:
    """Construct :class:`Ok` with better type inference at call sites."""
    return Ok(value)


def err(error: E) -> Result[T, E]:
    """Construct :class:`Err` with better type inference at call sites."""
    return Err(error)


__all__ = ["Result", "Ok", "Err", "ok", "err"]
