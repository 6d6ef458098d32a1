"""Explicit success/failure values for best-effort boundaries."""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Generic, TypeVar

from client_reports.utils import truncate_error

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """A value plus an optional error description.

    A failed result still carries a usable (usually empty) value so callers
    can branch on ``ok`` without losing what was retrieved.
    """

    value: T
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, value: T, error: BaseException | str) -> "Result[T]":
        return cls(value=value, error=truncate_error(error))

    @classmethod
    async def capture(
        cls,
        awaitable: Awaitable[T],
        *,
        default: T,
        catch: tuple[type[BaseException], ...] = (Exception,),
    ) -> "Result[T]":
        """Await ``awaitable`` and turn any exception in ``catch`` into a failure."""

        try:
            return cls.success(await awaitable)
        except catch as exc:
            return cls.failure(default, exc)
