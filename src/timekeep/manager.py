"""TimerManager: owns the counters and keeps at most one of them running."""

from __future__ import annotations

import logging
import math
from typing import Mapping

from .clock import SYSTEM_CLOCK, Clock
from .counter import Counter
from .errors import TimerLimitError, ValidationError
from .store import MAX_COUNTERS, MemoryStore, SnapshotStore

logger = logging.getLogger("timekeep.manager")

MIN_COUNTERS = 1
DEFAULT_COUNTER_COUNT = 2


class TimerManager:
    """Orchestrates a bounded set of counters with chess-clock semantics.

    Every mutating call writes the whole collection through the snapshot
    store. A failed write is logged; in-memory state stays authoritative.
    """

    def __init__(
        self,
        initial_count: int = DEFAULT_COUNTER_COUNT,
        store: SnapshotStore | None = None,
        clock: Clock | None = None,
    ):
        if not MIN_COUNTERS <= initial_count <= MAX_COUNTERS:
            raise ValidationError(
                f"Initial count must be between {MIN_COUNTERS} and {MAX_COUNTERS}"
            )

        self._clock: Clock = clock or SYSTEM_CLOCK
        self._store: SnapshotStore = store or SnapshotStore(MemoryStore(), clock=self._clock)
        self._counters: list[Counter] = []
        self._running_id: str | None = None

        if not self._load_from_store():
            self._counters = [
                Counter(f"Timer {i}", clock=self._clock) for i in range(1, initial_count + 1)
            ]

    # ---- Persistence ----

    def _load_from_store(self) -> bool:
        payload = self._store.load()
        if payload is None:
            return False

        try:
            counters = [Counter.from_dict(data, clock=self._clock) for data in payload["counters"]]
        except ValidationError as e:
            logger.warning(f"Failed to restore timers from storage, clearing: {e}")
            self._store.clear()
            return False

        # The monotonic baseline does not survive a restart; nothing resumes running.
        self._counters = counters
        self._running_id = None
        logger.debug(f"Restored {len(counters)} timers from storage")
        return True

    def _persist(self) -> None:
        payload = {
            "counters": [counter.to_dict() for counter in self._counters],
            "runningId": self._running_id,
        }
        if not self._store.save(payload):
            logger.warning("Failed to save timer state")

    # ---- Queries ----

    def get_all_timers(self) -> list[Counter]:
        return list(self._counters)

    def get_timer(self, counter_id: str) -> Counter | None:
        for counter in self._counters:
            if counter.id == counter_id:
                return counter
        return None

    def get_running_timer(self) -> Counter | None:
        if self._running_id is None:
            return None
        return self.get_timer(self._running_id)

    @property
    def running_id(self) -> str | None:
        return self._running_id

    def __len__(self) -> int:
        return len(self._counters)

    # ---- Commands ----

    def start_timer(self, counter_id: str) -> bool:
        """Start ``counter_id``, pausing whichever counter was running.

        Returns False if the id is unknown.
        """
        counter = self.get_timer(counter_id)
        if counter is None:
            return False

        if counter.is_running():
            return True

        if self._running_id is not None:
            running = self.get_timer(self._running_id)
            if running is not None:
                running.pause()

        counter.start()
        self._running_id = counter_id
        self._persist()
        return True

    def pause_timer(self, counter_id: str) -> bool:
        """Pause ``counter_id`` if it is running. Pausing an idle counter is a no-op."""
        counter = self.get_timer(counter_id)
        if counter is None:
            return False

        if counter.is_running():
            counter.pause()
            self._running_id = None

        self._persist()
        return True

    def add_timer(self, title: str | None = None) -> Counter:
        if len(self._counters) >= MAX_COUNTERS:
            raise TimerLimitError(f"Maximum {MAX_COUNTERS} timers reached")

        counter = Counter(title or f"Timer {len(self._counters) + 1}", clock=self._clock)
        self._counters.append(counter)
        self._persist()
        return counter

    def remove_timer(self, counter_id: str) -> bool:
        """Remove a counter. The last remaining counter is never removed."""
        if len(self._counters) <= MIN_COUNTERS:
            return False

        counter = self.get_timer(counter_id)
        if counter is None:
            return False

        if counter.is_running() or self._running_id == counter_id:
            self._running_id = None

        self._counters.remove(counter)
        self._persist()
        return True

    def reset_all(self) -> None:
        for counter in self._counters:
            counter.reset()
        self._running_id = None
        self._persist()

    def reset_timer(self, counter_id: str) -> bool:
        counter = self.get_timer(counter_id)
        if counter is None:
            return False

        counter.reset()
        if self._running_id == counter_id:
            self._running_id = None
        self._persist()
        return True

    def update_timer_title(self, counter_id: str, title: str) -> bool:
        """Rename a counter. Raises ValidationError for a bad title."""
        counter = self.get_timer(counter_id)
        if counter is None:
            return False

        counter.title = title
        self._persist()
        return True

    def distribute_time(self, allocation: Mapping[str, int | float]) -> bool:
        """Credit allocated milliseconds to each matching counter's stored base.

        Unknown ids are logged and skipped. Returns True if at least one
        entry applied. Running counters keep their start tick, so their live
        value includes the credit on top of the running session.
        """
        applied = 0
        for counter_id, ms in allocation.items():
            counter = self.get_timer(counter_id)
            if counter is None:
                logger.warning(f"Skipping allocation for unknown timer {counter_id}")
                continue
            if isinstance(ms, bool) or not math.isfinite(ms):
                logger.warning(f"Skipping non-numeric allocation {ms!r} for timer {counter_id}")
                continue
            if ms < 0:
                logger.warning(f"Skipping negative allocation of {ms}ms for timer {counter_id}")
                continue
            counter.add_elapsed(ms)
            applied += 1

        if applied == 0:
            return False

        self._persist()
        return True
