"""Counter state machine. Pure logic, no I/O.

All time values are integer milliseconds. The time source is injected as a
Clock so tests can drive it deterministically.
"""

from __future__ import annotations

import math
import uuid
from enum import Enum
from typing import Any

from .clock import SYSTEM_CLOCK, Clock
from .errors import ValidationError


class CounterState(str, Enum):
    STOPPED = "stopped"
    PAUSED = "paused"
    RUNNING = "running"


VALID_STATES = tuple(state.value for state in CounterState)
TITLE_MAX_LENGTH = 50


def format_elapsed(ms: int | float) -> str:
    """Format milliseconds as zero-padded 'HH:MM:SS'. Hours are not capped at 99."""
    total_seconds = int(ms // 1000)
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def validate_title(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError("Title must be a string")
    if len(value) == 0:
        raise ValidationError("Title cannot be empty")
    if len(value) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")
    return value


class Counter:
    """A single named timer.

    ``stopped -> running -> paused -> running``; ``reset`` lands on
    ``stopped`` from anywhere. While running, the stored base plus the time
    since ``start_tick`` is the live elapsed value.
    """

    def __init__(self, title: str, counter_id: str | None = None, clock: Clock | None = None):
        self._title: str = validate_title(title)
        self._id: str = counter_id or str(uuid.uuid4())
        self._clock: Clock = clock or SYSTEM_CLOCK
        self._state: CounterState = CounterState.STOPPED
        self._elapsed_ms: int | float = 0
        self._start_tick: int | None = None

    # ---- Read-only properties ----

    @property
    def id(self) -> str:
        return self._id

    @property
    def state(self) -> CounterState:
        return self._state

    @property
    def stored_elapsed_ms(self) -> int | float:
        """Time accrued before the current running session."""
        return self._elapsed_ms

    @property
    def start_tick(self) -> int | None:
        return self._start_tick

    @property
    def title(self) -> str:
        return self._title

    @title.setter
    def title(self, value: str) -> None:
        self._title = validate_title(value)

    # ---- Transitions ----

    def start(self) -> None:
        """Begin accruing. No-op while running so the baseline is kept."""
        if self._state == CounterState.RUNNING:
            return
        self._start_tick = self._clock.monotonic_ms()
        self._state = CounterState.RUNNING

    def pause(self) -> None:
        if self._state != CounterState.RUNNING:
            return
        now = self._clock.monotonic_ms()
        self._elapsed_ms += now - self._start_tick
        self._start_tick = None
        self._state = CounterState.PAUSED

    def reset(self) -> None:
        self._state = CounterState.STOPPED
        self._elapsed_ms = 0
        self._start_tick = None

    def add_elapsed(self, ms: int | float) -> None:
        """Credit ``ms`` to the stored base. ``start_tick`` is left alone."""
        self._elapsed_ms += ms

    # ---- Queries ----

    def get_elapsed_ms(self) -> int | float:
        if self._state == CounterState.RUNNING:
            return self._elapsed_ms + (self._clock.monotonic_ms() - self._start_tick)
        return self._elapsed_ms

    def get_formatted_time(self) -> str:
        return format_elapsed(self.get_elapsed_ms())

    def is_running(self) -> bool:
        return self._state == CounterState.RUNNING

    # ---- Serialization ----

    def to_dict(self) -> dict:
        """Snapshot for durable storage (camelCase keys).

        A running counter is written as paused with its live elapsed value;
        the monotonic start tick is never written.
        """
        state = CounterState.PAUSED if self._state == CounterState.RUNNING else self._state
        return {
            "id": self._id,
            "title": self._title,
            "elapsedMs": self.get_elapsed_ms(),
            "state": state.value,
        }

    @classmethod
    def from_dict(cls, data: Any, clock: Clock | None = None) -> "Counter":
        """Rebuild a counter from a snapshot. ``running`` comes back as ``paused``."""
        if not isinstance(data, dict):
            raise ValidationError("Invalid counter data")

        counter_id = data.get("id")
        if not isinstance(counter_id, str) or not counter_id:
            raise ValidationError("Counter data must have a valid id")

        title = data.get("title")
        if not isinstance(title, str) or not title:
            raise ValidationError("Counter data must have a valid title")

        elapsed = data.get("elapsedMs")
        if (
            isinstance(elapsed, bool)
            or not isinstance(elapsed, (int, float))
            or not math.isfinite(elapsed)
            or elapsed < 0
        ):
            raise ValidationError("Counter data must have a valid elapsedMs")

        state = data.get("state")
        if state not in VALID_STATES:
            raise ValidationError(f"Counter state must be one of: {', '.join(VALID_STATES)}")

        counter = cls(title, counter_id, clock=clock)
        counter._elapsed_ms = elapsed
        if state != CounterState.STOPPED.value:
            counter._state = CounterState.PAUSED
        return counter

    def __repr__(self) -> str:
        return f"Counter(id={self._id!r}, title={self._title!r}, state={self._state.value})"
