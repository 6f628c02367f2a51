"""
Scenario configuration.

Run parameters are resolved once at startup from explicit overrides (CLI
flags), then environment variables, then defaults. The environment variable
names are the upper-cased field names (VUS, DURATION, WS_URL, TOPIC, ...).
"""

from datetime import timedelta
from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigError
from ..utils.duration import parse_duration
from ..utils.validation import validate_topic_name, validate_ws_url

DEFAULT_WS_URL = "ws://127.0.0.1:8080/ws"
DEFAULT_TOPIC = "kline:1s:BTC-USD"
DEFAULT_VUS = 1000
DEFAULT_DURATION = timedelta(minutes=2)


class ScenarioConfig(BaseSettings):
    """
    Immutable parameters of one constant-concurrency run.

    Example:
        ```python
        config = resolve_config(vus=10, duration="30s")
        config.duration_seconds  # 30.0
        ```
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    ws_url: str = Field(default=DEFAULT_WS_URL, description="Target WebSocket URL")
    topic: str = Field(default=DEFAULT_TOPIC, description="Topic each virtual user subscribes to")
    vus: int = Field(default=DEFAULT_VUS, gt=0, description="Number of concurrent virtual users")
    duration: timedelta = Field(default=DEFAULT_DURATION, description="Steady-state run length")

    connect_timeout: timedelta = Field(default=timedelta(seconds=10))
    close_timeout: timedelta = Field(default=timedelta(seconds=5))
    shutdown_grace: timedelta = Field(default=timedelta(seconds=10))

    reconnect: bool = Field(default=False, description="Re-run a virtual user after it terminates")
    reconnect_delay: timedelta = Field(default=timedelta(seconds=1))

    progress_interval: timedelta = Field(
        default=timedelta(0), description="Progress log interval, zero disables it"
    )

    @field_validator("ws_url")
    @classmethod
    def _check_ws_url(cls, value: str) -> str:
        if not validate_ws_url(value):
            raise ValueError(f"ws_url must be a ws:// or wss:// URL, got {value!r}")
        return value

    @field_validator("topic")
    @classmethod
    def _check_topic(cls, value: str) -> str:
        if not validate_topic_name(value):
            raise ValueError(
                "Invalid topic name. Use alphanumeric, underscore, hyphen, dot or colon only."
            )
        return value

    @field_validator(
        "duration",
        "connect_timeout",
        "close_timeout",
        "shutdown_grace",
        "reconnect_delay",
        "progress_interval",
        mode="before",
    )
    @classmethod
    def _parse_duration(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @field_validator("duration", "connect_timeout", "close_timeout", "shutdown_grace")
    @classmethod
    def _check_positive(cls, value: timedelta) -> timedelta:
        if value.total_seconds() <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("reconnect_delay", "progress_interval")
    @classmethod
    def _check_non_negative(cls, value: timedelta) -> timedelta:
        if value.total_seconds() < 0:
            raise ValueError("must not be negative")
        return value

    @property
    def duration_seconds(self) -> float:
        return self.duration.total_seconds()


def resolve_config(**overrides: Any) -> ScenarioConfig:
    """
    Build the scenario configuration.

    Overrides set to None are treated as absent so that unset CLI flags fall
    through to the environment and the defaults.

    Raises:
        ConfigError: If any parameter is invalid.
    """
    explicit = {key: value for key, value in overrides.items() if value is not None}
    try:
        return ScenarioConfig(**explicit)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigError(
            "Invalid scenario configuration: " + "; ".join(problems),
            details={"errors": problems},
            original_exception=e,
        ) from e
