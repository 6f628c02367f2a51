from dataclasses import dataclass
from enum import Enum
from typing import Union


MESSAGE_COUNT = "message_count"
CLOSE_COUNT = "close_count"
ERROR_COUNT = "error_count"

COUNTER_NAMES = (MESSAGE_COUNT, CLOSE_COUNT, ERROR_COUNT)


class LatencyKind(str, Enum):
    """Latency distributions; the value is the metric name."""
    CONNECT_TO_OPEN = "connect_to_open_ms"
    OPEN_TO_FIRST = "open_to_first_message_ms"
    OPEN_TO_CLOSE = "open_to_close_ms"


TREND_NAMES = tuple(kind.value for kind in LatencyKind)


@dataclass(frozen=True)
class MessageReceived:
    topic: str


@dataclass(frozen=True)
class ConnectionClosed:
    topic: str


@dataclass(frozen=True)
class ConnectionErrored:
    topic: str
    error: str = ""


@dataclass(frozen=True)
class LatencySample:
    topic: str
    kind: LatencyKind
    duration_ms: float

    def __post_init__(self):
        if self.duration_ms < 0:
            # reported durations are never negative
            object.__setattr__(self, "duration_ms", 0.0)


MetricEvent = Union[MessageReceived, ConnectionClosed, ConnectionErrored, LatencySample]
