import json

import pytest

from wsload.models.events import CLOSE_COUNT, ERROR_COUNT, MESSAGE_COUNT
from wsload.ws.connection import ConnectionState, ConnectionStateMachine


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def machine(sink, clock):
    m = ConnectionStateMachine("kline:1s:BTC-USD", sink, clock=clock, name="vu-test")
    m.start()
    return m


def connect_to_open(sink):
    return sink.snapshot().samples("connect_to_open_ms")


def open_to_first(sink):
    return sink.snapshot().samples("open_to_first_message_ms")


def open_to_close(sink):
    return sink.snapshot().samples("open_to_close_ms")


class TestLifecycle:
    def test_starts_connecting(self, machine):
        assert machine.state is ConnectionState.CONNECTING
        assert machine.timers.connect_requested_at == 100.0
        assert machine.timers.opened_at is None

    def test_open_emits_connect_latency_and_returns_subscribe_frame(self, machine, sink, clock):
        clock.advance(0.25)

        frame = machine.on_open()

        assert machine.state is ConnectionState.OPEN
        assert json.loads(frame) == {"type": "sub", "topics": ["kline:1s:BTC-USD"]}
        assert connect_to_open(sink) == (pytest.approx(250.0),)

    def test_subscribed_after_frame_written(self, machine):
        machine.on_open()
        machine.on_subscribed()
        assert machine.state is ConnectionState.SUBSCRIBED

    def test_first_message_sampled_once(self, machine, sink, clock):
        machine.on_open()
        machine.on_subscribed()

        clock.advance(0.5)
        machine.on_message()
        clock.advance(1.0)
        machine.on_message()
        machine.on_message()

        assert machine.state is ConnectionState.RECEIVING
        assert open_to_first(sink) == (pytest.approx(500.0),)
        assert sink.snapshot().counter(MESSAGE_COUNT) == 3
        assert machine.message_count == 3
        assert machine.timers.first_message_at == pytest.approx(100.5)

    def test_message_before_open_counted_without_sample(self, machine, sink):
        machine.on_message()

        assert sink.snapshot().counter(MESSAGE_COUNT) == 1
        assert open_to_first(sink) == ()
        assert machine.timers.first_message_at is None

    def test_close_emits_close_and_open_to_close(self, machine, sink, clock):
        machine.on_open()
        clock.advance(2.0)

        machine.on_close()

        assert machine.state is ConnectionState.CLOSED
        assert sink.snapshot().counter(CLOSE_COUNT) == 1
        assert open_to_close(sink) == (pytest.approx(2000.0),)

    def test_close_without_open_has_no_open_to_close(self, machine, sink):
        machine.on_close()

        assert sink.snapshot().counter(CLOSE_COUNT) == 1
        assert open_to_close(sink) == ()

    def test_close_is_terminal(self, machine, sink):
        machine.on_open()
        machine.on_close()

        machine.on_message()
        machine.on_error(RuntimeError("late"))
        machine.on_close()

        snapshot = sink.snapshot()
        assert machine.state is ConnectionState.CLOSED
        assert snapshot.counter(CLOSE_COUNT) == 1
        assert snapshot.counter(MESSAGE_COUNT) == 0
        assert snapshot.counter(ERROR_COUNT) == 0
        assert len(open_to_close(sink)) == 1

    def test_open_after_close_rejected(self, machine):
        machine.on_close()
        with pytest.raises(RuntimeError):
            machine.on_open()

    def test_open_twice_rejected(self, machine):
        machine.on_open()
        with pytest.raises(RuntimeError):
            machine.on_open()


class TestErrors:
    def test_error_does_not_close(self, machine, sink):
        machine.on_open()
        machine.on_error(OSError("connection reset"))

        assert machine.state is ConnectionState.ERRORED
        assert machine.errored
        assert not machine.closed
        assert sink.snapshot().counter(ERROR_COUNT) == 1
        assert sink.snapshot().counter(CLOSE_COUNT) == 0

    def test_close_after_error_is_processed(self, machine, sink, clock):
        machine.on_open()
        clock.advance(1.0)
        machine.on_error(OSError("connection reset"))
        clock.advance(1.0)
        machine.on_close()

        snapshot = sink.snapshot()
        assert machine.closed
        assert snapshot.counter(ERROR_COUNT) == 1
        assert snapshot.counter(CLOSE_COUNT) == 1
        assert open_to_close(sink) == (pytest.approx(2000.0),)

    def test_handshake_error_before_open(self, machine, sink):
        machine.on_error(ConnectionRefusedError("refused"))

        snapshot = sink.snapshot()
        assert snapshot.counter(ERROR_COUNT) == 1
        assert connect_to_open(sink) == ()


class TestTimers:
    def test_timestamps_are_ordered(self, machine, clock):
        clock.advance(0.1)
        machine.on_open()
        machine.on_subscribed()
        clock.advance(0.2)
        machine.on_message()
        clock.advance(0.3)
        machine.on_close()

        timers = machine.timers
        assert timers.connect_requested_at <= timers.opened_at
        assert timers.opened_at <= timers.first_message_at <= timers.closed_at

    def test_clock_going_backwards_never_reorders(self, machine, sink, clock):
        clock.advance(1.0)
        machine.on_open()
        clock.advance(-5.0)
        machine.on_message()
        machine.on_close()

        timers = machine.timers
        assert timers.opened_at <= timers.first_message_at <= timers.closed_at
        assert all(value >= 0 for value in open_to_first(sink) + open_to_close(sink))

    def test_timers_view_is_a_copy(self, machine):
        view = machine.timers
        view.opened_at = 1.0
        assert machine.timers.opened_at is None

    def test_start_is_idempotent(self, machine, clock):
        clock.advance(3.0)
        machine.start()
        assert machine.timers.connect_requested_at == 100.0
