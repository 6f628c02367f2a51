import asyncio
import logging
import time
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from ..models.messages import TickMessage
from .subscriber import Subscriber

logger = logging.getLogger(__name__)


class Topic:
    """
    A topic with its own tick worker.

    Every `tick_interval` seconds the worker builds one tick message and
    fans it out to all subscribers concurrently. A subscriber whose send
    fails or takes longer than `send_timeout_ms` is dropped so it cannot
    slow down the others.
    """

    def __init__(self, name: str, tick_interval: float = 1.0, send_timeout_ms: int = 500):
        self.name = name
        self._subscribers: Dict[UUID, Subscriber] = {}
        self._lock = Lock()
        self._tick_interval = tick_interval
        self._send_timeout_ms = send_timeout_ms
        self._seq = 0
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def add_subscriber(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers[subscriber.client_id] = subscriber

    def remove_subscriber(self, client_id: UUID) -> bool:
        with self._lock:
            return self._subscribers.pop(client_id, None) is not None

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def message_count(self) -> int:
        return self._seq

    def start(self) -> None:
        if not self._running:
            self._running = True
            self._task = asyncio.create_task(self._tick_worker())
            logger.info(f"Started tick worker for topic {self.name}")

    async def stop(self) -> None:
        if self._running:
            self._running = False
            if self._task:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            logger.info(f"Stopped tick worker for topic {self.name}")

    async def _tick_worker(self) -> None:
        while self._running:
            await asyncio.sleep(self._tick_interval)
            self._seq += 1
            message = TickMessage(
                topic=self.name,
                seq=self._seq,
                ts_ms=int(time.time() * 1000),
            ).model_dump(mode="json")
            try:
                await self._fan_out(message)
            except Exception as e:
                logger.error(f"Error in tick worker for {self.name}: {e}")

    async def _fan_out(self, message: dict) -> None:
        with self._lock:
            subscribers = [s for s in self._subscribers.values() if not s.is_closed()]

        if not subscribers:
            return

        results = await asyncio.gather(
            *(self._send_with_timeout(subscriber, message) for subscriber in subscribers),
            return_exceptions=True,
        )

        for subscriber, result in zip(subscribers, results):
            if result is not True:
                self.remove_subscriber(subscriber.client_id)

    async def _send_with_timeout(self, subscriber: Subscriber, message: dict) -> bool:
        try:
            return await asyncio.wait_for(
                subscriber.send(message),
                timeout=self._send_timeout_ms / 1000.0
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Subscriber {subscriber.client_id} too slow, dropping "
                f"(timeout: {self._send_timeout_ms}ms)"
            )
            subscriber.close()
            return False


class TopicHub:
    """
    Registry of live topics.

    Topics are created on first subscribe and torn down when their last
    subscriber leaves.
    """

    def __init__(self, tick_interval: float = 1.0, send_timeout_ms: int = 500):
        self._topics: Dict[str, Topic] = {}
        self._global_lock = Lock()
        self._tick_interval = tick_interval
        self._send_timeout_ms = send_timeout_ms

    def subscribe(self, subscriber: Subscriber, topics: Iterable[str]) -> None:
        for name in topics:
            with self._global_lock:
                topic = self._topics.get(name)
                if topic is None:
                    topic = Topic(name, self._tick_interval, self._send_timeout_ms)
                    self._topics[name] = topic
                    topic.start()
            topic.add_subscriber(subscriber)
            subscriber.topics.add(name)
        logger.info(f"subscribe client={subscriber.client_id} topics={sorted(subscriber.topics)}")

    async def unsubscribe(self, subscriber: Subscriber, topics: Iterable[str]) -> None:
        for name in list(topics):
            subscriber.topics.discard(name)
            with self._global_lock:
                topic = self._topics.get(name)
            if topic is not None:
                topic.remove_subscriber(subscriber.client_id)
                await self._drop_if_empty(name)

    async def cleanup_subscriber(self, subscriber: Subscriber) -> None:
        """Remove a subscriber from all of its topics. Called on disconnect."""
        subscriber.close()
        await self.unsubscribe(subscriber, set(subscriber.topics))

    async def _drop_if_empty(self, name: str) -> None:
        with self._global_lock:
            topic = self._topics.get(name)
            if topic is None or topic.subscriber_count() > 0:
                return
            del self._topics[name]
        await topic.stop()

    def list_topics(self) -> List[str]:
        with self._global_lock:
            return list(self._topics.keys())

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        with self._global_lock:
            topics_snapshot = dict(self._topics)

        return {
            name: {
                "message_count": topic.message_count(),
                "subscriber_count": topic.subscriber_count(),
            }
            for name, topic in topics_snapshot.items()
        }

    def get_total_subscriber_count(self) -> int:
        with self._global_lock:
            topics_snapshot = list(self._topics.values())
        return sum(topic.subscriber_count() for topic in topics_snapshot)

    async def shutdown(self) -> None:
        with self._global_lock:
            topics_snapshot = list(self._topics.values())
            self._topics.clear()

        await asyncio.gather(*(topic.stop() for topic in topics_snapshot), return_exceptions=True)
        logger.info("All topic tick workers stopped")
