from .config import ScenarioConfig, resolve_config
from .events import (
    ConnectionClosed,
    ConnectionErrored,
    LatencyKind,
    LatencySample,
    MessageReceived,
    MetricEvent,
)

__all__ = [
    "ConnectionClosed",
    "ConnectionErrored",
    "LatencyKind",
    "LatencySample",
    "MessageReceived",
    "MetricEvent",
    "ScenarioConfig",
    "resolve_config",
]
