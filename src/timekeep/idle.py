"""Idle interval reconstruction across hidden/visible transitions.

A wall-clock marker is written on every hidden transition and consumed on
the next visible one. The marker lives in the durable store, so an idle
interval that spans a full restart is still measured.
"""

from __future__ import annotations

import logging
from typing import Callable

from .clock import SYSTEM_CLOCK, Clock
from .store import KeyValueStore

logger = logging.getLogger("timekeep.idle")

IDLE_MARKER_KEY = "idle_detector_hidden_at"
DEFAULT_IDLE_THRESHOLD_MS = 10_000


class IdleTracker:
    def __init__(
        self,
        backend: KeyValueStore,
        on_idle: Callable[[int], None],
        on_resume: Callable[[], None],
        threshold_ms: int = DEFAULT_IDLE_THRESHOLD_MS,
        clock: Clock | None = None,
        check_on_start: bool = True,
        key: str = IDLE_MARKER_KEY,
    ):
        self.backend = backend
        self.on_idle = on_idle
        self.on_resume = on_resume
        self.threshold_ms = threshold_ms
        self.key = key
        self._clock = clock or SYSTEM_CLOCK

        # A marker left over from a reload while hidden is reconciled now.
        if check_on_start:
            self.check()

    def on_hidden(self) -> None:
        now = self._clock.wall_ms()
        try:
            self.backend.set(self.key, str(now))
        except Exception as e:
            logger.warning(f"Could not record hidden timestamp: {e}")

    def on_visible(self) -> int | None:
        return self.check()

    def handle_visibility(self, visible: bool) -> None:
        if visible:
            self.on_visible()
        else:
            self.on_hidden()

    def check(self) -> int | None:
        """Consume the marker and fire exactly one callback.

        Returns the idle duration reported to ``on_idle``, else None.
        """
        hidden_at = self._take_marker()
        if hidden_at is None:
            self.on_resume()
            return None

        idle_ms = self._clock.wall_ms() - hidden_at
        if idle_ms > self.threshold_ms:
            logger.info(f"Idle for {idle_ms}ms (threshold {self.threshold_ms}ms)")
            self.on_idle(idle_ms)
            return idle_ms

        logger.debug(f"Away for {idle_ms}ms, under threshold; resuming")
        self.on_resume()
        return None

    def _take_marker(self) -> int | None:
        try:
            raw = self.backend.get(self.key)
        except Exception as e:
            logger.warning(f"Could not read hidden timestamp: {e}")
            return None
        if raw is None:
            return None

        # Delete before deciding so one interval is never reported twice.
        try:
            self.backend.delete(self.key)
        except Exception as e:
            logger.warning(f"Could not clear hidden timestamp: {e}")

        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Discarding malformed hidden timestamp {raw!r}")
            return None
