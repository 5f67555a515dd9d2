"""Invoice change notifications.

Every write to an invoice row produces a ChangeEvent. Events are delivered to
two channels so observers can watch either a single invoice or a whole
organization:

- ``invoices:id:{invoice_id}``
- ``invoices:org:{organization_id}``

Delivery is best effort. A failed publish is logged and never fails the write
that produced it, since observers fall back to polling.
"""

import asyncio
import logging
import threading
from collections.abc import AsyncIterator
from typing import Literal, Protocol

import redis
import redis.asyncio as aioredis
from pydantic import BaseModel

from invoicing.invoices.schema import InvoiceRead, InvoiceStatus
from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)


class ChangeEvent(BaseModel):
    """A single row change.

    Attributes:
        event_type: INSERT, UPDATE or DELETE
        invoice: Row state after the change (before it, for DELETE)
        old_status: Status before the change, None for inserts
    """

    event_type: Literal["INSERT", "UPDATE", "DELETE"]
    invoice: InvoiceRead
    old_status: InvoiceStatus | None = None


def invoice_channel(invoice_id: str) -> str:
    return f"invoices:id:{invoice_id}"


def organization_channel(organization_id: str) -> str:
    return f"invoices:org:{organization_id}"


def channels_for(event: ChangeEvent) -> tuple[str, str]:
    return (
        invoice_channel(event.invoice.id),
        organization_channel(event.invoice.organization_id),
    )


class ChangePublisher(Protocol):
    """Anything that can broadcast change events."""

    def publish(self, event: ChangeEvent) -> None: ...


class ChangeFeed(Protocol):
    """Anything observers can subscribe to."""

    def listen(self, channel: str) -> AsyncIterator[ChangeEvent]: ...


class LocalChangeBus:
    """In-process publish/subscribe bus.

    Publishers may run in worker threads (FastAPI runs sync handlers in a
    threadpool); each subscriber queue is fed through its own event loop.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[tuple[asyncio.AbstractEventLoop, asyncio.Queue]]] = {}

    def publish(self, event: ChangeEvent) -> None:
        for channel in channels_for(event):
            with self._lock:
                targets = list(self._subscribers.get(channel, []))
            for loop, queue in targets:
                if loop.is_closed():
                    continue
                try:
                    loop.call_soon_threadsafe(queue.put_nowait, event)
                except RuntimeError as e:
                    # loop closed after the check
                    logger.warning(f"Dropped change event for {channel}: {e}")

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, []))

    async def listen(self, channel: str) -> AsyncIterator[ChangeEvent]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        entry = (loop, queue)
        with self._lock:
            self._subscribers.setdefault(channel, []).append(entry)
        try:
            while True:
                yield await queue.get()
        finally:
            with self._lock:
                subscribers = self._subscribers.get(channel, [])
                if entry in subscribers:
                    subscribers.remove(entry)
                if not subscribers:
                    self._subscribers.pop(channel, None)


class RedisChangePublisher:
    """Publishes change events to Redis pub/sub."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._client: redis.Redis | None = None

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.Redis.from_url(self.settings.redis_url)
            logger.info(f"Redis change publisher initialized for {self.settings.redis_url}")
        return self._client

    def publish(self, event: ChangeEvent) -> None:
        message = event.model_dump_json()
        try:
            client = self._get_client()
            for channel in channels_for(event):
                client.publish(channel, message)
        except redis.RedisError as e:
            logger.warning(f"Failed to publish change for invoice {event.invoice.id}: {e}")


class RedisChangeFeed:
    """Subscribes to change events published by RedisChangePublisher."""

    def __init__(self, settings: Settings, client: aioredis.Redis | None = None) -> None:
        self.settings = settings
        self._client = client

    def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.Redis.from_url(self.settings.redis_url)
        return self._client

    async def listen(self, channel: str) -> AsyncIterator[ChangeEvent]:
        pubsub = self._get_client().pubsub()
        await pubsub.subscribe(channel)
        logger.debug(f"Subscribed to {channel}")
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield ChangeEvent.model_validate_json(message["data"])
                except ValueError as e:
                    logger.warning(f"Ignoring malformed change event on {channel}: {e}")
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()


class ChangeBroadcaster:
    """Fans a change event out to every configured publisher."""

    def __init__(self, publishers: list[ChangePublisher]) -> None:
        self.publishers = publishers

    def publish(self, event: ChangeEvent) -> None:
        for publisher in self.publishers:
            publisher.publish(event)


def create_broadcaster(settings: Settings, local_bus: LocalChangeBus) -> ChangeBroadcaster:
    """Build the broadcaster for the configured delivery channels."""
    publishers: list[ChangePublisher] = [local_bus]
    if settings.realtime_enabled:
        publishers.append(RedisChangePublisher(settings))
    return ChangeBroadcaster(publishers)


def create_feed(settings: Settings, local_bus: LocalChangeBus) -> ChangeFeed:
    """Feed for observers: Redis when enabled (sees every API process), else the local bus."""
    if settings.realtime_enabled:
        return RedisChangeFeed(settings)
    return local_bus
