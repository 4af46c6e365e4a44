"""
Lifecycle Event Publisher

Pushes committed QueueEvents to subscribers (notification service,
crowd analytics). Publishing is best-effort and happens after commit: a slow
or unavailable broker costs at most EVENT_PUBLISH_TIMEOUT and never fails the
ticket operation. Subscribers that missed messages catch up from the event
feed endpoint, which reads the durable event log.

Supports:
1. Redis pub/sub (when REDIS_URL is set)
2. In-memory ring buffer (for development/testing)
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Dict, Iterable, List, Optional

from queue_service.config import settings
from queue_service.models.queue_ticket import QueueEvent
from queue_service.schemas.queue_ticket import QueueEventResponse

logger = logging.getLogger(__name__)


class EventPublisherBackend(ABC):
    """Abstract publisher backend interface."""

    @abstractmethod
    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        """Publish one message; raise on failure."""
        pass


class InMemoryEventBackend(EventPublisherBackend):
    """
    Keeps the most recent messages in process memory.

    Note: not shared across server instances; use Redis in production.
    """

    def __init__(self, max_size: int = 1000):
        self._messages: deque = deque(maxlen=max_size)
        self._lock = asyncio.Lock()

    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        async with self._lock:
            self._messages.append((channel, message))

    async def recent(self, limit: int = 100) -> List[Dict[str, Any]]:
        async with self._lock:
            return [message for _, message in list(self._messages)[-limit:]]


class RedisEventBackend(EventPublisherBackend):
    """Redis pub/sub backend for production."""

    def __init__(self, redis_url: str):
        self._redis_url = redis_url
        self._client = None

    async def _get_client(self):
        if self._client is None:
            import redis.asyncio as redis
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        client = await self._get_client()
        await client.publish(channel, json.dumps(message))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class EventPublisher:
    """Serialises QueueEvents and hands them to the configured backend."""

    def __init__(
        self,
        backend: EventPublisherBackend,
        channel: str = "queue.events",
        timeout: float = 1.0,
    ):
        self.backend = backend
        self.channel = channel
        self.timeout = timeout

    @staticmethod
    def to_message(event: QueueEvent) -> Dict[str, Any]:
        return QueueEventResponse.model_validate(event).model_dump(mode="json")

    async def publish_events(self, events: Iterable[QueueEvent]) -> int:
        """Publish events in order. Returns how many were delivered."""
        delivered = 0
        for event in events:
            message = self.to_message(event)
            try:
                await asyncio.wait_for(
                    self.backend.publish(self.channel, message),
                    timeout=self.timeout,
                )
                delivered += 1
            except Exception as e:
                logger.warning(
                    f"Event {message['id']} ({message['event_type']}) not published: {e}"
                )
        return delivered


_publisher_instance: Optional[EventPublisher] = None


def get_event_publisher() -> EventPublisher:
    """Get the event publisher singleton."""
    global _publisher_instance

    if _publisher_instance is None:
        if settings.REDIS_URL:
            backend = RedisEventBackend(settings.REDIS_URL)
            logger.info("Event publisher initialized with Redis backend")
        else:
            backend = InMemoryEventBackend(settings.EVENT_BUFFER_SIZE)
            logger.info("Event publisher initialized with in-memory backend")

        _publisher_instance = EventPublisher(
            backend,
            channel=settings.EVENT_CHANNEL,
            timeout=settings.EVENT_PUBLISH_TIMEOUT,
        )

    return _publisher_instance


async def close_event_publisher() -> None:
    """Release the broker connection on shutdown."""
    global _publisher_instance

    if _publisher_instance is not None and isinstance(_publisher_instance.backend, RedisEventBackend):
        await _publisher_instance.backend.close()
    _publisher_instance = None
