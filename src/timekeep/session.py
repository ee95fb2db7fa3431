"""Visibility-driven session glue between IdleTracker and TimerManager.

When the host goes hidden the running timer is paused and remembered. On
return, a short absence resumes it; a long one produces an
``AllocationRequest`` that the presentation layer resolves whenever the
user decides. Nothing here blocks waiting for that decision.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Callable

from .allocator import DISCARD_CHOICE, AllocationChoice, build_allocation
from .clock import SYSTEM_CLOCK, Clock
from .counter import Counter
from .idle import DEFAULT_IDLE_THRESHOLD_MS, IdleTracker
from .manager import TimerManager
from .store import KeyValueStore

logger = logging.getLogger("timekeep.session")


class AllocationRequest:
    """Pending decision on where an idle interval should go.

    ``choose`` validates the choice before resolving, so an AllocationError
    reaches the caller and the request stays open for another attempt.
    ``cancel`` always resolves to the discard outcome.
    """

    def __init__(self, idle_ms: int, timers: list[Counter], previous_running_id: str | None):
        self.idle_ms = idle_ms
        self.timers = timers
        self.previous_running_id = previous_running_id
        self.future: Future[dict[str, int]] = Future()

    @property
    def done(self) -> bool:
        return self.future.done()

    def choose(self, choice: AllocationChoice) -> dict[str, int]:
        allocation = build_allocation(choice, self.idle_ms, self.previous_running_id)
        self._resolve(allocation)
        return allocation

    def cancel(self) -> None:
        self._resolve(build_allocation(DISCARD_CHOICE, self.idle_ms))

    def _resolve(self, allocation: dict[str, int]) -> None:
        if self.future.done():
            logger.debug("Allocation request already resolved; ignoring")
            return
        self.future.set_result(allocation)


class TimerSession:
    def __init__(
        self,
        manager: TimerManager,
        backend: KeyValueStore,
        chooser: Callable[[AllocationRequest], None],
        idle_threshold_ms: int = DEFAULT_IDLE_THRESHOLD_MS,
        clock: Clock | None = None,
        check_on_start: bool = True,
    ):
        self.manager = manager
        self.chooser = chooser
        self.pending: AllocationRequest | None = None
        self._hidden_running: list[str] = []
        self.idle = IdleTracker(
            backend,
            on_idle=self._handle_idle,
            on_resume=self._handle_resume,
            threshold_ms=idle_threshold_ms,
            clock=clock or SYSTEM_CLOCK,
            check_on_start=check_on_start,
        )

    def hidden(self) -> None:
        running = self.manager.get_running_timer()
        if running is not None:
            self._hidden_running = [running.id]
            self.manager.pause_timer(running.id)
        self.idle.on_hidden()

    def visible(self) -> int | None:
        """Run the idle check. Returns the idle duration if one was reported."""
        return self.idle.on_visible()

    def _handle_resume(self) -> None:
        for counter_id in self._hidden_running:
            self.manager.start_timer(counter_id)
        self._hidden_running = []

    def _handle_idle(self, idle_ms: int) -> None:
        previous = self._hidden_running[0] if self._hidden_running else None
        request = AllocationRequest(idle_ms, self.manager.get_all_timers(), previous)
        request.future.add_done_callback(lambda f: self._apply(request, f.result()))
        self.pending = request
        self.chooser(request)

    def _apply(self, request: AllocationRequest, allocation: dict[str, int]) -> None:
        if allocation:
            self.manager.distribute_time(allocation)

        previous = request.previous_running_id
        if previous is not None and self.manager.get_timer(previous) is not None:
            self.manager.start_timer(previous)

        self._hidden_running = []
        if self.pending is request:
            self.pending = None
