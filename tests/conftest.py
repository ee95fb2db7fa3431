import pytest

from timekeep.store import MemoryStore, SnapshotStore


class FakeClock:
    """Manually advanced clock. Both readings move together."""

    def __init__(self, mono_ms: int = 1_000, wall_ms: int = 1_700_000_000_000):
        self.mono = mono_ms
        self.wall = wall_ms

    def monotonic_ms(self) -> int:
        return self.mono

    def wall_ms(self) -> int:
        return self.wall

    def advance(self, ms: int) -> None:
        self.mono += ms
        self.wall += ms


class BrokenStore:
    """Backend whose every operation fails."""

    def get(self, key):
        raise OSError("store unavailable")

    def set(self, key, value):
        raise OSError("store unavailable")

    def delete(self, key):
        raise OSError("store unavailable")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return MemoryStore()


@pytest.fixture
def snapshot_store(backend, clock):
    return SnapshotStore(backend, clock=clock)
