from typing import Any
from uuid import UUID
import logging

logger = logging.getLogger(__name__)


class Subscriber:
    """
    One WebSocket connection subscribed to one or more topics.

    A connection that fails a send is marked closed and dropped by every
    topic it belongs to.
    """

    def __init__(self, client_id: UUID, websocket: Any):
        self.client_id = client_id
        self.websocket = websocket
        self.topics: set = set()
        self._closed = False

    def close(self) -> None:
        self._closed = True

    def is_closed(self) -> bool:
        return self._closed

    async def send(self, message: dict) -> bool:
        """
        Send one message. Returns False if the connection failed.
        """
        if self._closed:
            return False

        try:
            await self.websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to {self.client_id}: {e}")
            self._closed = True
            return False
