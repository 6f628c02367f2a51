import threading

import pytest

from wsload.metrics import sink as sink_module
from wsload.metrics.sink import MetricSink, TrendSummary
from wsload.models.events import (
    CLOSE_COUNT,
    ERROR_COUNT,
    MESSAGE_COUNT,
    ConnectionClosed,
    ConnectionErrored,
    LatencyKind,
    LatencySample,
    MessageReceived,
)


class TestMetricSink:
    def test_counters_are_tagged_by_topic(self, sink):
        sink.record(MessageReceived("a"))
        sink.record(MessageReceived("a"))
        sink.record(MessageReceived("b"))
        sink.record(ConnectionClosed("a"))
        sink.record(ConnectionErrored("b", "boom"))

        snapshot = sink.snapshot()

        assert snapshot.counter(MESSAGE_COUNT, "a") == 2
        assert snapshot.counter(MESSAGE_COUNT, "b") == 1
        assert snapshot.counter(MESSAGE_COUNT) == 3
        assert snapshot.counter(CLOSE_COUNT, "a") == 1
        assert snapshot.counter(CLOSE_COUNT, "b") == 0
        assert snapshot.counter(ERROR_COUNT) == 1
        assert snapshot.topics() == ["a", "b"]

    def test_latency_samples_go_to_named_trends(self, sink):
        sink.record(LatencySample("a", LatencyKind.CONNECT_TO_OPEN, 12.5))
        sink.record(LatencySample("a", LatencyKind.CONNECT_TO_OPEN, 7.5))
        sink.record(LatencySample("b", LatencyKind.OPEN_TO_CLOSE, 1000.0))

        snapshot = sink.snapshot()

        assert snapshot.samples("connect_to_open_ms", "a") == (12.5, 7.5)
        assert snapshot.samples("open_to_close_ms") == (1000.0,)
        assert snapshot.samples("open_to_first_message_ms") == ()

    def test_negative_latency_is_clamped(self):
        sample = LatencySample("a", LatencyKind.OPEN_TO_FIRST, -0.001)
        assert sample.duration_ms == 0.0

    def test_unknown_event_rejected(self, sink):
        with pytest.raises(TypeError):
            sink.record("message")

    def test_snapshot_is_isolated_from_later_records(self, sink):
        sink.record(MessageReceived("a"))
        sink.record(LatencySample("a", LatencyKind.OPEN_TO_FIRST, 3.0))
        snapshot = sink.snapshot()

        sink.record(MessageReceived("a"))
        sink.record(LatencySample("a", LatencyKind.OPEN_TO_FIRST, 4.0))

        assert snapshot.counter(MESSAGE_COUNT, "a") == 1
        assert snapshot.samples("open_to_first_message_ms", "a") == (3.0,)
        assert sink.snapshot().counter(MESSAGE_COUNT, "a") == 2

    def test_snapshot_is_read_only(self, sink):
        sink.record(MessageReceived("a"))
        snapshot = sink.snapshot()

        with pytest.raises(TypeError):
            snapshot.counters[(MESSAGE_COUNT, "a")] = 100

    def test_concurrent_recording_is_exact(self, sink):
        threads_count = 8
        per_thread = 5000
        snapshots = []

        def producer():
            for i in range(per_thread):
                sink.record(MessageReceived("t"))
                if i % 1000 == 0:
                    sink.record(LatencySample("t", LatencyKind.OPEN_TO_FIRST, float(i)))

        def reader():
            for _ in range(50):
                snapshots.append(sink.snapshot().counter(MESSAGE_COUNT, "t"))

        threads = [threading.Thread(target=producer) for _ in range(threads_count)]
        threads.append(threading.Thread(target=reader))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        final = sink.snapshot()
        assert final.counter(MESSAGE_COUNT, "t") == threads_count * per_thread
        assert len(final.samples("open_to_first_message_ms", "t")) == threads_count * 5
        assert snapshots == sorted(snapshots)
        assert all(0 <= value <= threads_count * per_thread for value in snapshots)

    def test_counters_saturate(self, sink, monkeypatch):
        monkeypatch.setattr(sink_module, "COUNTER_MAX", 3)

        for _ in range(10):
            sink.record(MessageReceived("t"))

        assert sink.snapshot().counter(MESSAGE_COUNT, "t") == 3


class TestTrendSummary:
    def test_empty(self):
        summary = TrendSummary.from_samples(())
        assert summary.count == 0
        assert summary.max == 0.0

    def test_statistics(self):
        summary = TrendSummary.from_samples(tuple(float(v) for v in range(1, 101)))

        assert summary.count == 100
        assert summary.min == 1.0
        assert summary.max == 100.0
        assert summary.avg == pytest.approx(50.5)
        assert summary.med == pytest.approx(50.5)
        assert summary.p90 == 91.0
        assert summary.p95 == 96.0
        assert summary.p99 == 100.0

    def test_single_sample(self):
        summary = TrendSummary.from_samples((4.0,))
        assert summary.min == summary.max == summary.p99 == 4.0

    def test_snapshot_trend(self):
        sink = MetricSink()
        for value in (5.0, 1.0, 3.0):
            sink.record(LatencySample("a", LatencyKind.OPEN_TO_CLOSE, value))

        summary = sink.snapshot().trend("open_to_close_ms", "a")

        assert summary.count == 3
        assert summary.med == 3.0
