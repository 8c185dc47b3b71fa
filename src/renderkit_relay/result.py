"""
Tagged result type shared by the relay and renderer artifacts.

Artifacts may return ``Ok(value)`` / ``Err(code)`` from ``render_relay`` and
``validate_relay_props``; plain return values are wrapped in ``Ok`` by the
renderer handle so the render engine only ever sees a ``Result``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result carrying a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed result carrying an error code."""

    error: str

    @property
    def ok(self) -> bool:
        return False


Result = Ok[T] | Err


def as_result(value: object) -> Ok[object] | Err:
    """Wrap a plain value in ``Ok`` unless it already is a result."""
    if isinstance(value, (Ok, Err)):
        return value
    return Ok(value)
