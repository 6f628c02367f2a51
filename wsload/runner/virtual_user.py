import asyncio
import logging
from enum import Enum
from typing import Any, Optional

import websockets
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from ..exceptions import CancellationTimeout, ConnectError, TransportError
from ..metrics.sink import MetricSink
from ..models.config import ScenarioConfig
from ..ws.connection import ConnectionStateMachine

logger = logging.getLogger(__name__)

# Failures a connection attempt or a live session can raise on the wire
TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class Outcome(str, Enum):
    NORMAL_CLOSE = "normal_close"
    CANCELLED = "cancelled"
    ERROR = "error"


class VirtualUser:
    """
    One simulated client holding one connection for the scenario.

    The runner never closes the connection on its own. It waits on three
    sources at once: the handshake, inbound messages and the shared
    cancellation event. On cancellation it closes the connection and waits
    for the close handshake for at most close_timeout, then aborts the
    transport so a stuck peer cannot hold up the executor.
    """

    def __init__(self, vu_id: int, config: ScenarioConfig, sink: MetricSink):
        self.vu_id = vu_id
        self.config = config
        self.sink = sink
        self.name = f"vu-{vu_id}"

    async def run(self, cancel: asyncio.Event) -> Outcome:
        machine = ConnectionStateMachine(self.config.topic, self.sink, name=self.name)
        machine.start()

        ws = None
        session: Optional[asyncio.Task] = None
        try:
            try:
                ws = await self._open(cancel)
            except TRANSPORT_ERRORS as e:
                machine.on_error(ConnectError(f"Handshake failed: {e}", original_exception=e))
                return Outcome.ERROR

            if ws is None:
                logger.debug(f"{self.name}: cancelled while connecting")
                return Outcome.CANCELLED

            session = asyncio.create_task(self._session(ws, machine))
            waiter = asyncio.create_task(cancel.wait())
            try:
                await asyncio.wait({session, waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                waiter.cancel()

            if session.done():
                return self._finish(session, machine)

            await self._shutdown(ws, session)
            machine.on_close()
            return Outcome.CANCELLED

        finally:
            if session is not None and not session.done():
                session.cancel()
            if ws is not None and not machine.closed:
                # forced termination: release the socket without a handshake
                ws.transport.abort()
                machine.on_close()

    async def _connect(self) -> Any:
        return await websockets.connect(
            self.config.ws_url,
            open_timeout=self.config.connect_timeout.total_seconds(),
            # _shutdown bounds the close handshake itself
            close_timeout=None,
            max_size=None,
            compression=None,
        )

    async def _session(self, ws: Any, machine: ConnectionStateMachine) -> None:
        """
        Subscribe, then count every inbound frame until the connection ends.
        """
        frame = machine.on_open()
        await ws.send(frame)
        machine.on_subscribed()

        async for _ in ws:
            machine.on_message()

    async def _open(self, cancel: asyncio.Event) -> Any:
        """
        Connect unless cancellation fires first.

        Returns the open connection, or None if cancellation won. Handshake
        errors propagate.
        """
        attempt = asyncio.create_task(self._connect())
        waiter = asyncio.create_task(cancel.wait())
        try:
            await asyncio.wait({attempt, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not attempt.done():
                attempt.cancel()

        if attempt.done() and not attempt.cancelled():
            return attempt.result()

        (late,) = await asyncio.gather(attempt, return_exceptions=True)
        if not isinstance(late, BaseException):
            late.transport.abort()
        return None

    def _finish(self, session: asyncio.Task, machine: ConnectionStateMachine) -> Outcome:
        """
        The session ended on its own: the peer closed or the transport failed.
        """
        error = session.exception()

        if error is None or isinstance(error, ConnectionClosedOK):
            machine.on_close()
            logger.debug(f"{self.name}: closed by peer")
            return Outcome.NORMAL_CLOSE

        if isinstance(error, TRANSPORT_ERRORS):
            machine.on_error(TransportError(str(error), original_exception=error))
            machine.on_close()
            return Outcome.ERROR

        raise error

    async def _shutdown(self, ws: Any, session: asyncio.Task) -> None:
        timeout = self.config.close_timeout.total_seconds()
        try:
            await asyncio.wait_for(ws.close(), timeout=timeout)
        except asyncio.TimeoutError:
            anomaly = CancellationTimeout(
                f"{self.name}: close not acknowledged within {timeout:g}s, aborting",
                details={"vu": self.vu_id},
            )
            logger.warning(anomaly.message)
            ws.transport.abort()

        if not session.done():
            session.cancel()
        await asyncio.gather(session, return_exceptions=True)
