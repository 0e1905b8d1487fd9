"""Unit tests for the Result container."""

from __future__ import annotations

import pytest

from onceline.core.errors import StorageError
from onceline.core.result import Err, Ok, Result, err, ok


def test_ok_map_and_flat_map() -> None:
    """`Ok` should map/flat_map and keep values typed."""
    r: Result[int, str] = ok(10)
    r2 = r.map(lambda x: x + 5).flat_map(lambda x: ok(x * 2))
    assert r2.is_ok() and r2.unwrap() == 30


def test_err_propagation_and_map_err() -> None:
    """`Err` should propagate through map/flat_map and allow mapping the error."""
    r: Result[int, str] = err("boom")
    assert r.is_err()
    assert r.map(lambda x: x + 1).is_err()
    assert r.flat_map(lambda x: ok(x)).is_err()
    r2 = r.map_err(lambda e: f"{e}!")
    assert isinstance(r2, Err) and r2.unwrap_err() == "boom!"


def test_unwrap_variants_and_defaults() -> None:
    assert ok("x").unwrap() == "x"
    assert err("e").get_or("fallback") == "fallback"
    with pytest.raises(RuntimeError):
        err("e").unwrap()
    with pytest.raises(RuntimeError):
        ok(1).unwrap_err()


def test_raise_if_err_raises_the_payload() -> None:
    """Exception payloads are raised as-is so callers can catch the specific kind."""
    assert ok(3).raise_if_err() == 3
    failure = StorageError("disk full")
    with pytest.raises(StorageError) as info:
        err(failure).raise_if_err()
    assert info.value is failure

    with pytest.raises(RuntimeError, match="plain"):
        err("plain").raise_if_err()


def test_variants_are_value_objects() -> None:
    assert Ok(1) == Ok(1)
    assert Err("a") != Err("b")
