"""Idle-time allocation strategies.

Every function is pure and returns a new ``{counter_id: ms}`` dict whose
values sum exactly to the total handed in (``discard`` returns nothing).
Percentages use scaled-integer arithmetic so no milliseconds are lost or
invented by rounding.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Mapping

from .errors import AllocationError

# Percentages are scaled by 1000 before the integer multiply:
# share = total * floor(pct * 1000) // (100 * 1000)
PERCENT_SCALE = 1000
PERCENT_DIVISOR = 100 * PERCENT_SCALE


class AllocationStrategy(str, Enum):
    PREVIOUS_TIMER = "previous-timer"
    SELECTED_TIMER = "selected-timer"
    FIXED = "fixed-distribution"
    PERCENTAGE = "percentage-distribution"
    DISCARD = "discard"


@dataclass(frozen=True)
class AllocationChoice:
    """A strategy picked by the user plus whatever it needs to run."""

    strategy: AllocationStrategy = AllocationStrategy.DISCARD
    timer_id: str | None = None
    amounts: Mapping[str, int | float] = field(default_factory=dict)
    remainder_id: str | None = None


DISCARD_CHOICE = AllocationChoice()


def _scale_percentage(pct: float) -> int:
    # round() first so 33.334 * 1000 == 33333.999... still scales to 33334
    return math.floor(round(pct * PERCENT_SCALE, 6))


def _check_total(total_ms: int) -> None:
    if total_ms < 0:
        raise AllocationError(f"Total must be non-negative, got {total_ms}")


def allocate_to_single(total_ms: int, counter_id: str) -> dict[str, int]:
    _check_total(total_ms)
    return {counter_id: total_ms}


def allocate_fixed(
    total_ms: int, fixed: Mapping[str, int], remainder_id: str
) -> dict[str, int]:
    """Fixed amounts per counter; ``remainder_id`` gets the rest (possibly 0)."""
    _check_total(total_ms)
    result: dict[str, int] = {}
    allocated = 0
    for counter_id, amount in fixed.items():
        if amount < 0:
            raise AllocationError(f"Fixed amount for {counter_id} is negative")
        result[counter_id] = amount
        allocated += amount

    if allocated > total_ms:
        raise AllocationError(
            f"Fixed allocations exceed total time ({allocated}ms > {total_ms}ms)"
        )

    result[remainder_id] = result.get(remainder_id, 0) + (total_ms - allocated)
    return result


def allocate_percentage(
    total_ms: int, percentages: Mapping[str, float], remainder_id: str
) -> dict[str, int]:
    """Percentage shares rounded down; ``remainder_id`` absorbs the rounding."""
    _check_total(total_ms)
    scaled: dict[str, int] = {}
    for counter_id, pct in percentages.items():
        if pct < 0:
            raise AllocationError(f"Percentage for {counter_id} is negative")
        scaled[counter_id] = _scale_percentage(pct)

    # Exact decimal sum of the percentages as entered.
    total_pct = sum(Decimal(repr(float(pct))) for pct in percentages.values())
    if total_pct > 100:
        raise AllocationError(f"Percentages exceed 100% ({total_pct:g}%)")

    result: dict[str, int] = {}
    allocated = 0
    for counter_id, pct_scaled in scaled.items():
        share = int(total_ms) * pct_scaled // PERCENT_DIVISOR
        result[counter_id] = share
        allocated += share

    result[remainder_id] = result.get(remainder_id, 0) + (total_ms - allocated)
    return result


def allocate_discard(total_ms: int = 0) -> dict[str, int]:
    return {}


def build_allocation(
    choice: AllocationChoice, total_ms: int, previous_running_id: str | None = None
) -> dict[str, int]:
    """Turn a user's choice into an allocation map.

    Raises AllocationError when the choice cannot be satisfied; nothing is
    mutated here, so a failure leaves every counter untouched.
    """
    strategy = AllocationStrategy(choice.strategy)

    if strategy == AllocationStrategy.PREVIOUS_TIMER:
        if previous_running_id is None:
            return allocate_discard(total_ms)
        return allocate_to_single(total_ms, previous_running_id)

    if strategy == AllocationStrategy.SELECTED_TIMER:
        if not choice.timer_id:
            return allocate_discard(total_ms)
        return allocate_to_single(total_ms, choice.timer_id)

    if strategy in (AllocationStrategy.FIXED, AllocationStrategy.PERCENTAGE):
        if not choice.remainder_id:
            raise AllocationError(f"{strategy.value} needs a remainder timer")
        if strategy == AllocationStrategy.FIXED:
            return allocate_fixed(total_ms, choice.amounts, choice.remainder_id)
        return allocate_percentage(total_ms, choice.amounts, choice.remainder_id)

    return allocate_discard(total_ms)
