import statistics
import sys
from dataclasses import dataclass
from threading import Lock
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from ..models.events import (
    CLOSE_COUNT,
    ERROR_COUNT,
    MESSAGE_COUNT,
    ConnectionClosed,
    ConnectionErrored,
    LatencySample,
    MessageReceived,
    MetricEvent,
)

COUNTER_MAX = sys.maxsize

MetricKey = Tuple[str, str]  # (metric name, topic)


@dataclass(frozen=True)
class TrendSummary:
    count: int = 0
    avg: float = 0.0
    min: float = 0.0
    med: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    max: float = 0.0

    @classmethod
    def from_samples(cls, samples: Tuple[float, ...]) -> "TrendSummary":
        if not samples:
            return cls()

        ordered = sorted(samples)
        n = len(ordered)

        def pct(q: float) -> float:
            return ordered[min(n - 1, int(n * q))]

        return cls(
            count=n,
            avg=statistics.mean(ordered),
            min=ordered[0],
            med=statistics.median(ordered),
            p90=pct(0.90),
            p95=pct(0.95),
            p99=pct(0.99),
            max=ordered[-1],
        )


class MetricsSnapshot:
    """
    Immutable point-in-time copy of every accumulator in a MetricSink.

    Lookups without a topic aggregate across all topics.
    """

    def __init__(self, counters: Dict[MetricKey, int], trends: Dict[MetricKey, Tuple[float, ...]]):
        self._counters: Mapping[MetricKey, int] = MappingProxyType(dict(counters))
        self._trends: Mapping[MetricKey, Tuple[float, ...]] = MappingProxyType(dict(trends))

    @property
    def counters(self) -> Mapping[MetricKey, int]:
        return self._counters

    @property
    def trends(self) -> Mapping[MetricKey, Tuple[float, ...]]:
        return self._trends

    def topics(self) -> List[str]:
        names = {topic for _, topic in self._counters} | {topic for _, topic in self._trends}
        return sorted(names)

    def counter(self, name: str, topic: Optional[str] = None) -> int:
        if topic is not None:
            return self._counters.get((name, topic), 0)
        total = sum(value for (metric, _), value in self._counters.items() if metric == name)
        return min(total, COUNTER_MAX)

    def samples(self, name: str, topic: Optional[str] = None) -> Tuple[float, ...]:
        if topic is not None:
            return self._trends.get((name, topic), ())
        merged: List[float] = []
        for (metric, _), values in self._trends.items():
            if metric == name:
                merged.extend(values)
        return tuple(merged)

    def trend(self, name: str, topic: Optional[str] = None) -> TrendSummary:
        return TrendSummary.from_samples(self.samples(name, topic))


class MetricSink:
    """
    Run-scoped store of counters and latency distributions.

    CONCURRENCY:
    - record() may be called from any thread or task
    - Each record holds the lock for one dict update or list append
    - snapshot() copies under the same lock, so counts are never torn

    Counters saturate at sys.maxsize instead of growing past it.
    """

    def __init__(self):
        self._lock = Lock()
        self._counters: Dict[MetricKey, int] = {}
        self._trends: Dict[MetricKey, List[float]] = {}

    def record(self, event: MetricEvent) -> None:
        if isinstance(event, MessageReceived):
            self._increment(MESSAGE_COUNT, event.topic)
        elif isinstance(event, ConnectionClosed):
            self._increment(CLOSE_COUNT, event.topic)
        elif isinstance(event, ConnectionErrored):
            self._increment(ERROR_COUNT, event.topic)
        elif isinstance(event, LatencySample):
            self._append(event.kind.value, event.topic, event.duration_ms)
        else:
            raise TypeError(f"Unsupported metric event: {event!r}")

    def _increment(self, name: str, topic: str) -> None:
        key = (name, topic)
        with self._lock:
            current = self._counters.get(key, 0)
            if current < COUNTER_MAX:
                self._counters[key] = current + 1

    def _append(self, name: str, topic: str, value: float) -> None:
        key = (name, topic)
        with self._lock:
            bucket = self._trends.get(key)
            if bucket is None:
                bucket = self._trends[key] = []
            bucket.append(value)

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            counters = dict(self._counters)
            trends = {key: tuple(values) for key, values in self._trends.items()}
        return MetricsSnapshot(counters, trends)

