"""Chess-clock timers: one running at a time, persisted, with idle-time allocation."""

from .allocator import (
    AllocationChoice,
    AllocationStrategy,
    allocate_discard,
    allocate_fixed,
    allocate_percentage,
    allocate_to_single,
    build_allocation,
)
from .clock import Clock, SystemClock
from .counter import Counter, CounterState, format_elapsed
from .errors import (
    AllocationError,
    PersistenceError,
    TimekeepError,
    TimerLimitError,
    ValidationError,
    ValidationResult,
)
from .idle import IdleTracker
from .manager import TimerManager
from .session import AllocationRequest, TimerSession
from .store import KeyValueStore, MemoryStore, SnapshotStore, SqliteStore, validate_payload

__all__ = [
    "AllocationChoice",
    "AllocationError",
    "AllocationRequest",
    "AllocationStrategy",
    "Clock",
    "Counter",
    "CounterState",
    "IdleTracker",
    "KeyValueStore",
    "MemoryStore",
    "PersistenceError",
    "SnapshotStore",
    "SqliteStore",
    "SystemClock",
    "TimekeepError",
    "TimerLimitError",
    "TimerManager",
    "TimerSession",
    "ValidationError",
    "ValidationResult",
    "allocate_discard",
    "allocate_fixed",
    "allocate_percentage",
    "allocate_to_single",
    "build_allocation",
    "format_elapsed",
    "validate_payload",
]
