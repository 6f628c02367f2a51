import json
import logging
from uuid import uuid4

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ..models.messages import MessageType, SubscribeMessage, UnsubscribeMessage
from .hub import TopicHub
from .subscriber import Subscriber

logger = logging.getLogger(__name__)


class WebSocketHandler:
    """
    Serves one streaming connection.

    The client may send `{"type": "sub", "topics": [...]}` and
    `{"type": "unsub", "topics": [...]}`. Nothing is acknowledged and
    malformed frames are ignored; the only outbound traffic is ticks.
    """

    def __init__(self, hub: TopicHub):
        self.hub = hub

    async def handle_connection(self, websocket: WebSocket) -> None:
        await websocket.accept()
        subscriber = Subscriber(uuid4(), websocket)
        logger.info(f"WebSocket connected: {subscriber.client_id}")

        try:
            while True:
                raw_message = await websocket.receive_text()
                await self._handle_message(subscriber, raw_message)
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected: {subscriber.client_id}")
        except Exception as e:
            logger.error(f"WebSocket error for {subscriber.client_id}: {e}")
        finally:
            await self.hub.cleanup_subscriber(subscriber)

    async def _handle_message(self, subscriber: Subscriber, raw_message: str) -> None:
        try:
            data = json.loads(raw_message)
        except json.JSONDecodeError:
            logger.debug(f"Ignoring non-JSON frame from {subscriber.client_id}")
            return

        if not isinstance(data, dict):
            return

        try:
            if data.get("type") == MessageType.SUB:
                msg = SubscribeMessage(**data)
                self.hub.subscribe(subscriber, msg.topics)
            elif data.get("type") == MessageType.UNSUB:
                msg = UnsubscribeMessage(**data)
                await self.hub.unsubscribe(subscriber, msg.topics)
            else:
                logger.debug(f"Ignoring message type {data.get('type')!r}")
        except ValidationError as e:
            logger.debug(f"Ignoring invalid message from {subscriber.client_id}: {e}")
