"""Unit tests for change events and their delivery."""

import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import redis

from invoicing.invoices.schema import InvoiceRead, InvoiceStatus
from invoicing.realtime.events import (
    ChangeBroadcaster,
    ChangeEvent,
    LocalChangeBus,
    RedisChangeFeed,
    RedisChangePublisher,
    channels_for,
    create_broadcaster,
    create_feed,
    invoice_channel,
    organization_channel,
)
from invoicing.shared.config import Settings


def make_event(
    status: InvoiceStatus = InvoiceStatus.PROCESSED,
    old_status: InvoiceStatus | None = InvoiceStatus.PROCESSING,
    invoice_id: str = "inv-1",
) -> ChangeEvent:
    return ChangeEvent(
        event_type="UPDATE",
        invoice=InvoiceRead(id=invoice_id, organization_id="org-1", user_id="u-1", status=status),
        old_status=old_status,
    )


def test_channel_names() -> None:
    assert invoice_channel("inv-1") == "invoices:id:inv-1"
    assert organization_channel("org-1") == "invoices:org:org-1"
    assert channels_for(make_event()) == ("invoices:id:inv-1", "invoices:org:org-1")


class TestLocalChangeBus:
    """Test the in-process bus."""

    @pytest.mark.asyncio
    async def test_delivers_to_both_channels(self) -> None:
        bus = LocalChangeBus()
        by_id = bus.listen(invoice_channel("inv-1"))
        by_org = bus.listen(organization_channel("org-1"))
        first_id = asyncio.ensure_future(anext(by_id))
        first_org = asyncio.ensure_future(anext(by_org))
        await asyncio.sleep(0)

        bus.publish(make_event())

        assert (await asyncio.wait_for(first_id, 1)).invoice.id == "inv-1"
        assert (await asyncio.wait_for(first_org, 1)).invoice.status is InvoiceStatus.PROCESSED
        await by_id.aclose()
        await by_org.aclose()

    @pytest.mark.asyncio
    async def test_publish_from_worker_thread(self) -> None:
        """Events published from a threadpool reach the loop's subscribers."""
        bus = LocalChangeBus()
        stream = bus.listen(invoice_channel("inv-1"))
        pending = asyncio.ensure_future(anext(stream))
        await asyncio.sleep(0)

        thread = threading.Thread(target=bus.publish, args=(make_event(),))
        thread.start()
        thread.join()

        event = await asyncio.wait_for(pending, 1)
        assert event.old_status is InvoiceStatus.PROCESSING
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_unsubscribes_on_close(self) -> None:
        bus = LocalChangeBus()
        channel = invoice_channel("inv-1")
        stream = bus.listen(channel)
        pending = asyncio.ensure_future(anext(stream))
        await asyncio.sleep(0)
        assert bus.subscriber_count(channel) == 1

        pending.cancel()
        await asyncio.gather(pending, return_exceptions=True)
        await stream.aclose()

        assert bus.subscriber_count(channel) == 0

    def test_publish_without_subscribers(self) -> None:
        LocalChangeBus().publish(make_event())

    def test_loop_closing_during_publish(self) -> None:
        """A subscriber whose loop just closed is skipped, the others still receive."""
        bus = LocalChangeBus()
        closing = MagicMock()
        closing.is_closed.return_value = False
        closing.call_soon_threadsafe.side_effect = RuntimeError("Event loop is closed")
        healthy = MagicMock()
        healthy.is_closed.return_value = False
        channel = invoice_channel("inv-1")
        bus._subscribers[channel] = [(closing, MagicMock()), (healthy, MagicMock())]

        bus.publish(make_event())

        healthy.call_soon_threadsafe.assert_called_once()


class TestRedisChangePublisher:
    """Test Redis pub/sub publishing."""

    def test_publishes_json_to_both_channels(self) -> None:
        publisher = RedisChangePublisher(Settings(_env_file=None))
        client = MagicMock()

        with patch.object(publisher, "_get_client", return_value=client):
            publisher.publish(make_event())

        channels = [c.args[0] for c in client.publish.call_args_list]
        assert channels == ["invoices:id:inv-1", "invoices:org:org-1"]
        message = client.publish.call_args_list[0].args[1]
        assert ChangeEvent.model_validate_json(message).invoice.id == "inv-1"

    def test_redis_failure_is_logged_not_raised(self) -> None:
        publisher = RedisChangePublisher(Settings(_env_file=None))
        client = MagicMock()
        client.publish.side_effect = redis.ConnectionError("down")

        with patch.object(publisher, "_get_client", return_value=client):
            publisher.publish(make_event())


class TestBroadcaster:
    """Test fan-out configuration."""

    def test_fans_out(self) -> None:
        first, second = MagicMock(), MagicMock()
        event = make_event()

        ChangeBroadcaster([first, second]).publish(event)

        first.publish.assert_called_once_with(event)
        second.publish.assert_called_once_with(event)

    def test_redis_only_when_enabled(self) -> None:
        bus = LocalChangeBus()

        local_only = create_broadcaster(Settings(_env_file=None, realtime_enabled=False), bus)
        with_redis = create_broadcaster(Settings(_env_file=None, realtime_enabled=True), bus)

        assert local_only.publishers == [bus]
        assert len(with_redis.publishers) == 2
        assert isinstance(with_redis.publishers[1], RedisChangePublisher)

    def test_feed_follows_realtime_flag(self) -> None:
        bus = LocalChangeBus()

        assert create_feed(Settings(_env_file=None, realtime_enabled=False), bus) is bus
        assert isinstance(
            create_feed(Settings(_env_file=None, realtime_enabled=True), bus), RedisChangeFeed
        )


class TestRedisChangeFeed:
    """Test Redis pub/sub subscription."""

    @pytest.mark.asyncio
    async def test_yields_events_and_skips_malformed(self) -> None:
        async def messages():  # type: ignore[no-untyped-def]
            yield {"type": "subscribe", "data": 1}
            yield {"type": "message", "data": b"not json"}
            yield {"type": "message", "data": make_event().model_dump_json().encode()}

        pubsub = MagicMock()
        pubsub.subscribe = AsyncMock()
        pubsub.unsubscribe = AsyncMock()
        pubsub.aclose = AsyncMock()
        pubsub.listen = messages
        client = MagicMock()
        client.pubsub.return_value = pubsub

        feed = RedisChangeFeed(Settings(_env_file=None), client=client)
        stream = feed.listen("invoices:id:inv-1")
        event = await anext(stream)
        await stream.aclose()

        assert event.invoice.id == "inv-1"
        pubsub.subscribe.assert_awaited_once_with("invoices:id:inv-1")
        pubsub.unsubscribe.assert_awaited_once_with("invoices:id:inv-1")
        pubsub.aclose.assert_awaited_once()
