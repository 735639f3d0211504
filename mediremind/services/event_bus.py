import asyncio
import logging

logger = logging.getLogger(__name__)


class SessionEventBus:
    """Simple in-memory pub/sub for pipeline transitions and profile snapshots."""

    def __init__(self) -> None:
        self._subscribers: set[asyncio.Queue] = set()

    def subscribe_all(self) -> asyncio.Queue:
        """Subscribe to every topic. Returns a queue to await events from."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe_all(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    async def publish(self, topic: str, event: dict) -> None:
        event["type"] = topic

        for queue in self._subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Event queue full for %s subscriber", topic)
