"""Unit tests for the Counter state machine with a fake clock and no I/O."""

import pytest

from timekeep.counter import Counter, CounterState, format_elapsed
from timekeep.errors import ValidationError


def make_counter(clock, title: str = "Timer 1") -> Counter:
    return Counter(title, clock=clock)


# ---- format_elapsed ----

class TestFormatElapsed:
    def test_zero(self):
        assert format_elapsed(0) == "00:00:00"

    def test_truncates_partial_seconds(self):
        assert format_elapsed(1_999) == "00:00:01"

    def test_mixed(self):
        assert format_elapsed((1 * 3600 + 2 * 60 + 3) * 1000) == "01:02:03"

    def test_hours_exceed_99(self):
        assert format_elapsed((125 * 3600 + 30 * 60 + 45) * 1000) == "125:30:45"


# ---- Construction and titles ----

class TestTitle:
    def test_initial_state(self, clock):
        counter = make_counter(clock)
        assert counter.state == CounterState.STOPPED
        assert counter.get_elapsed_ms() == 0
        assert counter.start_tick is None
        assert counter.id

    def test_ids_are_unique(self, clock):
        assert make_counter(clock).id != make_counter(clock).id

    def test_explicit_id(self, clock):
        assert Counter("A", "abc", clock=clock).id == "abc"

    @pytest.mark.parametrize("title", ["", "x" * 51, None, 42])
    def test_rejects_bad_title_at_construction(self, clock, title):
        with pytest.raises(ValidationError):
            Counter(title, clock=clock)

    def test_accepts_50_characters(self, clock):
        assert make_counter(clock, "x" * 50).title == "x" * 50

    @pytest.mark.parametrize("title", ["", "x" * 51, None])
    def test_rejects_bad_rename(self, clock, title):
        counter = make_counter(clock)
        with pytest.raises(ValidationError):
            counter.title = title
        assert counter.title == "Timer 1"

    def test_rename(self, clock):
        counter = make_counter(clock)
        counter.title = "Deep work"
        assert counter.title == "Deep work"


# ---- Transitions ----

class TestTransitions:
    def test_start_accrues(self, clock):
        counter = make_counter(clock)
        counter.start()
        clock.advance(1_500)
        assert counter.is_running()
        assert counter.get_elapsed_ms() == 1_500

    def test_start_twice_keeps_start_tick(self, clock):
        """A second start() must not move the accrual baseline."""
        counter = make_counter(clock)
        counter.start()
        tick = counter.start_tick
        clock.advance(700)
        counter.start()
        assert counter.start_tick == tick
        clock.advance(300)
        assert counter.get_elapsed_ms() == 1_000

    def test_pause_folds_session_into_base(self, clock):
        counter = make_counter(clock)
        counter.start()
        clock.advance(2_000)
        counter.pause()
        assert counter.state == CounterState.PAUSED
        assert counter.stored_elapsed_ms == 2_000
        assert counter.start_tick is None
        clock.advance(5_000)
        assert counter.get_elapsed_ms() == 2_000

    def test_pause_when_not_running_is_noop(self, clock):
        counter = make_counter(clock)
        counter.pause()
        assert counter.state == CounterState.STOPPED

    def test_resume_accumulates(self, clock):
        counter = make_counter(clock)
        counter.start()
        clock.advance(1_000)
        counter.pause()
        clock.advance(10_000)
        counter.start()
        clock.advance(500)
        assert counter.get_elapsed_ms() == 1_500

    @pytest.mark.parametrize("running", [True, False])
    def test_reset_from_any_state(self, clock, running):
        counter = make_counter(clock)
        counter.start()
        clock.advance(3_000)
        if not running:
            counter.pause()
        counter.reset()
        assert counter.state == CounterState.STOPPED
        assert counter.get_elapsed_ms() == 0
        assert counter.start_tick is None

    def test_add_elapsed_keeps_start_tick(self, clock):
        counter = make_counter(clock)
        counter.start()
        tick = counter.start_tick
        clock.advance(1_000)
        counter.add_elapsed(5_000)
        assert counter.start_tick == tick
        assert counter.get_elapsed_ms() == 6_000

    def test_formatted_time_is_live(self, clock):
        counter = make_counter(clock)
        counter.start()
        clock.advance(61_000)
        assert counter.get_formatted_time() == "00:01:01"


# ---- Serialization ----

class TestSerialization:
    def test_to_dict_keys(self, clock):
        counter = Counter("Focus", "t-1", clock=clock)
        assert counter.to_dict() == {
            "id": "t-1",
            "title": "Focus",
            "elapsedMs": 0,
            "state": "stopped",
        }

    def test_running_serializes_as_paused(self, clock):
        counter = make_counter(clock)
        counter.start()
        clock.advance(4_200)
        before = counter.get_elapsed_ms()
        data = counter.to_dict()
        assert data["state"] == "paused"
        assert data["elapsedMs"] >= before
        assert "startTick" not in data

    @pytest.mark.parametrize("state", ["stopped", "paused"])
    def test_round_trip(self, clock, state):
        data = {"id": "t-9", "title": "Reading", "elapsedMs": 12_345, "state": state}
        restored = Counter.from_dict(data, clock=clock)
        assert restored.to_dict() == data

    def test_from_dict_normalizes_running(self, clock):
        restored = Counter.from_dict(
            {"id": "t", "title": "T", "elapsedMs": 10, "state": "running"}, clock=clock
        )
        assert restored.state == CounterState.PAUSED
        assert restored.start_tick is None

    @pytest.mark.parametrize(
        "data",
        [
            None,
            [],
            {"title": "T", "elapsedMs": 0, "state": "paused"},
            {"id": "", "title": "T", "elapsedMs": 0, "state": "paused"},
            {"id": "t", "title": "", "elapsedMs": 0, "state": "paused"},
            {"id": "t", "title": "T", "elapsedMs": -1, "state": "paused"},
            {"id": "t", "title": "T", "elapsedMs": "5", "state": "paused"},
            {"id": "t", "title": "T", "elapsedMs": True, "state": "paused"},
            {"id": "t", "title": "T", "elapsedMs": float("nan"), "state": "paused"},
            {"id": "t", "title": "T", "elapsedMs": 0, "state": "finished"},
            {"id": "t", "title": "x" * 51, "elapsedMs": 0, "state": "paused"},
        ],
    )
    def test_from_dict_rejects_malformed(self, clock, data):
        with pytest.raises(ValidationError):
            Counter.from_dict(data, clock=clock)
