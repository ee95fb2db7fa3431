"""Exception types and the tagged validation result."""

from __future__ import annotations

from dataclasses import dataclass


class TimekeepError(Exception):
    """Base class for all timekeep errors."""


class ValidationError(TimekeepError, ValueError):
    """Bad title, bad count, or malformed counter data from a caller."""


class AllocationError(TimekeepError, ValueError):
    """An allocation request that cannot be satisfied without losing time."""


class TimerLimitError(AllocationError):
    """Adding a timer would exceed the collection bound."""


class PersistenceError(TimekeepError):
    """A durable store could not be read or written."""


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: str | None = None

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls(True)

    @classmethod
    def failure(cls, reason: str) -> "ValidationResult":
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.ok
