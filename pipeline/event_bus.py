"""
Summarium - Event Publication

Outbound, fire-and-forget publication of summary events. The engine writes
domain events to an ``IEventPublisher``; publishing never raises into the
engine and makes no delivery or ordering promise to subscribers.

Two publishers:
- InMemoryEventBus: bounded outbound queue drained by ``dispatch_pending`` into
  in-process subscribers (tests, CLI demo)
- RedisStreamEventBus: one Redis Stream per topic, written with XADD
"""
import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from config import get_config
from domain.events import DomainEvent


logger = logging.getLogger("summarium.pipeline.event_bus")


# =============================================================================
# STREAM TOPICS
# =============================================================================

class StreamTopic(str, Enum):
    """Stream topics for summary events."""
    SUMMARY_STATUS = "stream:summary:status"
    DAILY_DATA_COLLECTION = "stream:summary:daily:collect"
    WEEKLY_SUMMARIZATION = "stream:summary:weekly:request"
    MONTHLY_SUMMARIZATION = "stream:summary:monthly:request"
    UNROUTED = "stream:summary:other"


EVENT_TOPICS: Dict[str, StreamTopic] = {
    "SummaryStatusChanged": StreamTopic.SUMMARY_STATUS,
    "DailyDataCollectionRequested": StreamTopic.DAILY_DATA_COLLECTION,
    "WeeklySummarizationRequested": StreamTopic.WEEKLY_SUMMARIZATION,
    "MonthlySummarizationRequested": StreamTopic.MONTHLY_SUMMARIZATION,
}


def topic_for(event_type: str) -> StreamTopic:
    return EVENT_TOPICS.get(event_type, StreamTopic.UNROUTED)


# =============================================================================
# MESSAGE TYPES
# =============================================================================

@dataclass
class EventMessage:
    """
    Wire form of a domain event.

    - message_id: set by the transport on publish
    - event_type: domain event class name
    - aggregate_id: summary the event concerns
    - payload: event-specific data
    """
    event_type: str
    payload: Dict[str, Any]
    aggregate_id: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    message_id: Optional[str] = None
    source: str = "summarium"

    @property
    def topic(self) -> StreamTopic:
        return topic_for(self.event_type)

    def to_dict(self) -> Dict[str, str]:
        """Flat string mapping for Redis storage."""
        return {
            "event_type": self.event_type,
            "payload": json.dumps(self.payload),
            "aggregate_id": self.aggregate_id or "",
            "event_id": self.event_id,
            "timestamp": self.timestamp,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], message_id: Optional[str] = None) -> "EventMessage":
        """Create from a Redis stream entry."""
        payload = data.get("payload", "{}")
        if isinstance(payload, str):
            payload = json.loads(payload)

        return cls(
            event_type=data.get("event_type", "unknown"),
            payload=payload,
            aggregate_id=data.get("aggregate_id") or None,
            event_id=data.get("event_id", str(uuid.uuid4())),
            timestamp=data.get("timestamp", datetime.now(timezone.utc).isoformat()),
            message_id=message_id,
            source=data.get("source", "summarium"),
        )

    @classmethod
    def from_domain_event(cls, event: DomainEvent) -> "EventMessage":
        data = event.to_dict()
        return cls(
            event_type=data["event_type"],
            payload=data["data"],
            aggregate_id=data["aggregate_id"],
            event_id=data["event_id"],
            timestamp=data["occurred_at"],
        )


# =============================================================================
# PUBLISHER INTERFACE
# =============================================================================

class IEventPublisher(ABC):
    """Fire-and-forget outbound event channel."""

    @abstractmethod
    async def publish(self, event: DomainEvent) -> None:
        """Publish one event. Failures are logged, never raised."""
        pass

    async def publish_all(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            await self.publish(event)


class NullEventPublisher(IEventPublisher):
    """Discards every event."""

    async def publish(self, event: DomainEvent) -> None:
        logger.debug("Dropping event %s", event.event_type)


Handler = Callable[[EventMessage], Awaitable[None]]


DEFAULT_MAX_PENDING = 10000


class InMemoryEventBus(IEventPublisher):
    """
    In-process outbound queue.

    ``publish`` only enqueues; subscribers see messages when
    ``dispatch_pending`` drains the queue. The queue holds at most
    ``max_pending`` messages and drops the oldest beyond that. With
    ``record_published`` every message is also kept in ``published``,
    which only tests should ask for.
    """

    def __init__(self, max_pending: int = DEFAULT_MAX_PENDING, record_published: bool = True) -> None:
        if max_pending < 1:
            raise ValueError(f"max_pending must be >= 1: {max_pending}")
        self._outbox: Deque[EventMessage] = deque()
        self._handlers: Dict[StreamTopic, List[Handler]] = {}
        self._sequence = 0
        self.max_pending = max_pending
        self.record_published = record_published
        self.published: List[EventMessage] = []
        self.dropped = 0
        self.fail_publishing = False

    async def publish(self, event: DomainEvent) -> None:
        try:
            if self.fail_publishing:
                raise ConnectionError("in-memory event bus is unavailable")
            message = EventMessage.from_domain_event(event)
            self._sequence += 1
            message.message_id = str(self._sequence)
            if len(self._outbox) >= self.max_pending:
                oldest = self._outbox.popleft()
                self.dropped += 1
                if self.dropped == 1:
                    logger.warning(
                        "Outbox full at %d messages, dropping oldest (%s)", self.max_pending, oldest.event_type
                    )
            self._outbox.append(message)
            if self.record_published:
                self.published.append(message)
        except Exception as e:
            logger.error("Failed to publish %s: %s", event.event_type, e)

    def subscribe(self, topic: StreamTopic, handler: Handler) -> None:
        self._handlers.setdefault(topic, []).append(handler)

    @property
    def pending_count(self) -> int:
        return len(self._outbox)

    def of_type(self, event_type: str) -> List[EventMessage]:
        return [m for m in self.published if m.event_type == event_type]

    async def dispatch_pending(self) -> int:
        """Deliver queued messages to subscribers. Returns the number delivered."""
        delivered = 0
        while self._outbox:
            message = self._outbox.popleft()
            for handler in self._handlers.get(message.topic, []):
                try:
                    await handler(message)
                except Exception as e:
                    logger.error(
                        "Subscriber failed on %s %s: %s", message.event_type, message.message_id, e
                    )
            delivered += 1
        return delivered


# =============================================================================
# REDIS STREAMS
# =============================================================================

@dataclass
class EventBusConfig:
    """Configuration for the Redis Streams publisher."""
    redis_url: str = field(default_factory=lambda: get_config().event_bus.redis_url)
    max_connections: int = 10
    max_stream_length: int = 10000
    publish_timeout_seconds: float = 5.0


class RedisStreamEventBus(IEventPublisher):
    """Publishes each event to the Redis Stream of its topic."""

    def __init__(self, config: Optional[EventBusConfig] = None, client: Optional[Redis] = None):
        self.config = config or EventBusConfig()
        self._redis: Optional[Redis] = client
        self._initialized = client is not None

    async def initialize(self) -> None:
        if self._initialized:
            return

        logger.info("Connecting event bus to %s", self.config.redis_url)
        try:
            self._redis = aioredis.from_url(
                self.config.redis_url,
                max_connections=self.config.max_connections,
                decode_responses=True,
            )
            await self._redis.ping()
            self._initialized = True
        except (RedisConnectionError, asyncio.TimeoutError) as e:
            # Degraded mode: publish() drops events until a later initialize() succeeds.
            logger.error("Redis unavailable, events will be dropped: %s", e)

    async def shutdown(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        self._initialized = False
        logger.info("Event bus shutdown complete")

    async def publish(self, event: DomainEvent) -> None:
        if not self._initialized or self._redis is None:
            logger.warning("Event bus not initialized, dropping %s", event.event_type)
            return

        message = EventMessage.from_domain_event(event)
        stream_name = message.topic.value
        try:
            message.message_id = await asyncio.wait_for(
                self._redis.xadd(
                    stream_name,
                    message.to_dict(),
                    maxlen=self.config.max_stream_length,
                    approximate=True,
                ),
                timeout=self.config.publish_timeout_seconds,
            )
            logger.debug(
                "Published %s to %s as %s", message.event_type, stream_name, message.message_id
            )
        except asyncio.TimeoutError:
            logger.error("Timeout publishing %s to %s", message.event_type, stream_name)
        except RedisError as e:
            logger.error("Redis error publishing %s to %s: %s", message.event_type, stream_name, e)
