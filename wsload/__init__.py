from .exceptions import CancellationTimeout, ConfigError, ConnectError, TransportError, WsLoadError
from .metrics.sink import MetricSink, MetricsSnapshot
from .models.config import ScenarioConfig, resolve_config
from .runner.executor import Executor, RunSummary, execute_scenario
from .runner.virtual_user import Outcome, VirtualUser

__version__ = "1.0.0"

__all__ = [
    "CancellationTimeout",
    "ConfigError",
    "ConnectError",
    "Executor",
    "MetricSink",
    "MetricsSnapshot",
    "Outcome",
    "RunSummary",
    "ScenarioConfig",
    "TransportError",
    "VirtualUser",
    "WsLoadError",
    "execute_scenario",
    "resolve_config",
]
