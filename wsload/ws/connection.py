import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..metrics.sink import MetricSink
from ..models.events import (
    ConnectionClosed,
    ConnectionErrored,
    LatencyKind,
    LatencySample,
    MessageReceived,
)
from ..models.messages import subscribe_frame

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    SUBSCRIBED = "subscribed"
    RECEIVING = "receiving"
    CLOSED = "closed"
    ERRORED = "errored"


@dataclass
class ConnectionTimers:
    """Monotonic timestamps in seconds. Each is written at most once."""
    connect_requested_at: Optional[float] = None
    opened_at: Optional[float] = None
    first_message_at: Optional[float] = None
    closed_at: Optional[float] = None


def _ms(start: float, end: float) -> float:
    return (end - start) * 1000.0


class ConnectionStateMachine:
    """
    Lifecycle of one virtual user's WebSocket connection.

    Transport callbacks (open, message, error, close) are fed in by the
    owning runner; every transition emits its metric events into the sink
    in transition order.

    TRANSITIONS:
    - CONNECTING -> OPEN: handshake done, connect-to-open sample
    - OPEN -> SUBSCRIBED: subscribe frame written
    - SUBSCRIBED -> RECEIVING: first message, open-to-first sample
    - any -> ERRORED: transport error, connection stays logically open
    - any -> CLOSED: terminal, open-to-close sample if it was ever open

    Latencies are measured from the connection's own open time so a slow
    handshake does not inflate delivery figures.
    """

    def __init__(
        self,
        topic: str,
        sink: MetricSink,
        clock: Callable[[], float] = time.monotonic,
        name: str = "",
    ):
        self.topic = topic
        self.name = name or topic
        self._sink = sink
        self._clock = clock
        self._state = ConnectionState.CONNECTING
        self._timers = ConnectionTimers()
        self._errored = False
        self._messages = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def timers(self) -> ConnectionTimers:
        return ConnectionTimers(**vars(self._timers))

    @property
    def errored(self) -> bool:
        return self._errored

    @property
    def closed(self) -> bool:
        return self._state is ConnectionState.CLOSED

    @property
    def message_count(self) -> int:
        return self._messages

    def _now(self) -> float:
        # never report a timestamp earlier than one already captured
        now = self._clock()
        for previous in (
            self._timers.closed_at,
            self._timers.first_message_at,
            self._timers.opened_at,
            self._timers.connect_requested_at,
        ):
            if previous is not None:
                return max(now, previous)
        return now

    def start(self) -> None:
        if self._timers.connect_requested_at is None:
            self._timers.connect_requested_at = self._now()
            logger.debug(f"{self.name}: connecting")

    def on_open(self) -> str:
        """
        Handshake completed. Returns the subscribe frame to write.
        """
        if self.closed or self._timers.opened_at is not None:
            raise RuntimeError(f"{self.name}: open in state {self._state.value}")

        self.start()
        self._timers.opened_at = self._now()
        self._state = ConnectionState.OPEN
        self._sink.record(LatencySample(
            self.topic,
            LatencyKind.CONNECT_TO_OPEN,
            _ms(self._timers.connect_requested_at, self._timers.opened_at),
        ))
        logger.debug(f"{self.name}: open")
        return subscribe_frame(self.topic)

    def on_subscribed(self) -> None:
        if self._state is ConnectionState.OPEN:
            self._state = ConnectionState.SUBSCRIBED

    def on_message(self) -> None:
        if self.closed:
            return

        if self._timers.opened_at is not None and self._timers.first_message_at is None:
            self._timers.first_message_at = self._now()
            self._sink.record(LatencySample(
                self.topic,
                LatencyKind.OPEN_TO_FIRST,
                _ms(self._timers.opened_at, self._timers.first_message_at),
            ))

        if self._state in (ConnectionState.OPEN, ConnectionState.SUBSCRIBED):
            self._state = ConnectionState.RECEIVING

        self._messages += 1
        self._sink.record(MessageReceived(self.topic))

    def on_error(self, error: BaseException) -> None:
        if self.closed:
            return

        self._errored = True
        self._state = ConnectionState.ERRORED
        self._sink.record(ConnectionErrored(self.topic, str(error)))
        logger.debug(f"{self.name}: error: {error}")

    def on_close(self) -> None:
        if self.closed:
            return

        self._timers.closed_at = self._now()
        self._state = ConnectionState.CLOSED
        self._sink.record(ConnectionClosed(self.topic))

        if self._timers.opened_at is not None:
            self._sink.record(LatencySample(
                self.topic,
                LatencyKind.OPEN_TO_CLOSE,
                _ms(self._timers.opened_at, self._timers.closed_at),
            ))
        logger.debug(f"{self.name}: closed after {self._messages} message(s)")
