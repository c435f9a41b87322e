from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Resolved(Generic[T]):
    """A value from a lookup that has a local fallback, tagged with the path taken."""

    value: T
    used_fallback: bool = False
    reason: str | None = None

    @classmethod
    def primary(cls, value: T) -> Resolved[T]:
        return cls(value=value)

    @classmethod
    def fallback(cls, value: T, reason: str) -> Resolved[T]:
        return cls(value=value, used_fallback=True, reason=reason)
