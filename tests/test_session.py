"""Tests for TimerSession: pause on hide, resume or allocate on return."""

import pytest

from timekeep.allocator import AllocationChoice, AllocationStrategy
from timekeep.errors import AllocationError
from timekeep.manager import TimerManager
from timekeep.session import TimerSession


class Chooser:
    """Collects requests without resolving them."""

    def __init__(self):
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)


@pytest.fixture
def manager(clock, snapshot_store):
    return TimerManager(3, store=snapshot_store, clock=clock)


@pytest.fixture
def chooser():
    return Chooser()


@pytest.fixture
def session(manager, backend, chooser, clock):
    return TimerSession(manager, backend, chooser, idle_threshold_ms=10_000, clock=clock)


def go_away(session, manager, clock, away_ms):
    t1 = manager.get_all_timers()[0]
    manager.start_timer(t1.id)
    clock.advance(2_000)
    session.hidden()
    clock.advance(away_ms)
    session.visible()
    return t1


class TestShortAbsence:
    def test_hidden_pauses_running(self, session, manager, clock):
        t1 = manager.get_all_timers()[0]
        manager.start_timer(t1.id)
        session.hidden()
        assert manager.get_running_timer() is None

    def test_short_absence_resumes(self, session, manager, clock, chooser):
        t1 = go_away(session, manager, clock, 3_000)
        assert manager.get_running_timer() is t1
        assert t1.get_elapsed_ms() == 2_000
        assert chooser.requests == []

    def test_nothing_running_stays_paused(self, session, manager, clock):
        session.hidden()
        clock.advance(1_000)
        session.visible()
        assert manager.get_running_timer() is None


class TestLongAbsence:
    def test_creates_request(self, session, manager, clock, chooser):
        t1 = go_away(session, manager, clock, 60_000)
        (request,) = chooser.requests
        assert request.idle_ms == 60_000
        assert request.previous_running_id == t1.id
        assert session.pending is request
        assert manager.get_running_timer() is None

    def test_choose_previous_timer(self, session, manager, clock, chooser):
        t1 = go_away(session, manager, clock, 60_000)
        chooser.requests[0].choose(AllocationChoice(AllocationStrategy.PREVIOUS_TIMER))
        assert t1.get_elapsed_ms() == 62_000
        assert manager.get_running_timer() is t1
        assert session.pending is None

    def test_choose_percentage(self, session, manager, clock, chooser):
        go_away(session, manager, clock, 90_000)
        t1, t2, t3 = manager.get_all_timers()
        chooser.requests[0].choose(
            AllocationChoice(
                AllocationStrategy.PERCENTAGE, amounts={t2.id: 33.333}, remainder_id=t3.id
            )
        )
        assert t2.get_elapsed_ms() + t3.get_elapsed_ms() == 90_000

    def test_cancel_discards_and_resumes(self, session, manager, clock, chooser):
        t1 = go_away(session, manager, clock, 60_000)
        chooser.requests[0].cancel()
        assert t1.get_elapsed_ms() == 2_000
        assert manager.get_running_timer() is t1

    def test_invalid_choice_leaves_request_open(self, session, manager, clock, chooser):
        t1 = go_away(session, manager, clock, 20_000)
        _, t2, t3 = manager.get_all_timers()
        request = chooser.requests[0]
        with pytest.raises(AllocationError):
            request.choose(
                AllocationChoice(AllocationStrategy.FIXED, amounts={t2.id: 50_000}, remainder_id=t3.id)
            )
        assert not request.done
        assert t2.get_elapsed_ms() == 0
        request.choose(AllocationChoice(AllocationStrategy.SELECTED_TIMER, timer_id=t2.id))
        assert t2.get_elapsed_ms() == 20_000
        assert manager.get_running_timer() is t1

    def test_second_resolution_ignored(self, session, manager, clock, chooser):
        t1 = go_away(session, manager, clock, 20_000)
        request = chooser.requests[0]
        request.choose(AllocationChoice(AllocationStrategy.PREVIOUS_TIMER))
        request.choose(AllocationChoice(AllocationStrategy.PREVIOUS_TIMER))
        assert t1.get_elapsed_ms() == 22_000

    def test_synchronous_chooser(self, manager, backend, clock):
        session = TimerSession(
            manager,
            backend,
            lambda request: request.choose(AllocationChoice(AllocationStrategy.PREVIOUS_TIMER)),
            clock=clock,
        )
        t1 = go_away(session, manager, clock, 30_000)
        assert t1.get_elapsed_ms() == 32_000
        assert manager.get_running_timer() is t1

    def test_previous_timer_removed_while_pending(self, session, manager, clock, chooser):
        t1 = go_away(session, manager, clock, 30_000)
        manager.remove_timer(t1.id)
        chooser.requests[0].choose(AllocationChoice(AllocationStrategy.PREVIOUS_TIMER))
        assert manager.get_running_timer() is None


class TestRestart:
    def test_idle_across_restart(self, clock, snapshot_store, backend, chooser):
        first = TimerManager(2, store=snapshot_store, clock=clock)
        t1 = first.get_all_timers()[0]
        first.start_timer(t1.id)
        clock.advance(5_000)
        TimerSession(first, backend, chooser, clock=clock, check_on_start=False).hidden()

        clock.advance(3_600_000)
        second = TimerManager(2, store=snapshot_store, clock=clock)
        TimerSession(second, backend, chooser, clock=clock)

        (request,) = chooser.requests
        assert request.idle_ms == 3_600_000
        assert request.previous_running_id is None
        assert second.get_timer(t1.id).get_elapsed_ms() == 5_000
