"""Client-side observers that detect when invoices finish extraction.

An observer follows a change feed and, as a fallback, polls the API at a fixed
interval. Both sources feed the same comparison against the last seen status,
so callbacks fire once per status change no matter which source saw it first.
Status only moves forward, so a snapshot that is not ahead of the last seen
status (a poll that started before a feed event arrived) is ignored.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from invoicing.invoices.lifecycle import is_ahead
from invoicing.invoices.schema import InvoiceRead, InvoiceStatus
from invoicing.realtime.events import ChangeEvent, ChangeFeed, invoice_channel, organization_channel
from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)

InvoiceCallback = Callable[[InvoiceRead], Awaitable[Any] | Any]


class InvoiceSource(Protocol):
    """Polling source for invoice state."""

    async def fetch_invoice(self, invoice_id: str) -> InvoiceRead | None: ...

    async def list_invoices(self, organization_id: str) -> list[InvoiceRead]: ...


async def _call(callback: InvoiceCallback | None, invoice: InvoiceRead) -> None:
    if callback is None:
        return
    try:
        result = callback(invoice)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception(f"Observer callback failed for invoice {invoice.id}")


class _Observer:
    """Shared start/stop handling for the feed and poll tasks."""

    def __init__(
        self,
        channel: str,
        feed: ChangeFeed | None,
        source: InvoiceSource | None,
        poll_interval: float,
    ) -> None:
        self.channel = channel
        self.feed = feed
        self.source = source
        self.poll_interval = poll_interval
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        """Start the feed subscription and the poll loop (needs a running loop)."""
        if self.running:
            return
        if self.feed is not None:
            self._tasks.append(asyncio.create_task(self._consume_feed()))
        if self.source is not None:
            self._tasks.append(asyncio.create_task(self._poll_loop()))
        logger.debug(f"Observer started on {self.channel}")

    async def stop(self) -> None:
        """Cancel both sources and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug(f"Observer stopped on {self.channel}")

    async def __aenter__(self) -> "_Observer":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _consume_feed(self) -> None:
        assert self.feed is not None
        try:
            async for event in self.feed.listen(self.channel):
                await self.handle_event(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # polling keeps running
            logger.warning(f"Change feed for {self.channel} failed: {e}")

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Polling {self.channel} failed: {e}")
            await asyncio.sleep(self.poll_interval)

    async def handle_event(self, event: ChangeEvent) -> None:
        raise NotImplementedError

    async def poll_once(self) -> None:
        raise NotImplementedError


class InvoiceObserver(_Observer):
    """Watches one invoice until it is processed or fails.

    Args:
        invoice_id: Invoice to watch
        feed: Change feed (None to rely on polling only)
        source: Polling source (None to rely on the feed only)
        on_processed: Called when the status becomes ``processed``
        on_error: Called when the status becomes ``error``
        on_updated: Called on every status change, after the specific callback
        poll_interval: Seconds between polls
    """

    def __init__(
        self,
        invoice_id: str,
        feed: ChangeFeed | None = None,
        source: InvoiceSource | None = None,
        on_processed: InvoiceCallback | None = None,
        on_error: InvoiceCallback | None = None,
        on_updated: InvoiceCallback | None = None,
        poll_interval: float = 3.0,
    ) -> None:
        super().__init__(invoice_channel(invoice_id), feed, source, poll_interval)
        self.invoice_id = invoice_id
        self.on_processed = on_processed
        self.on_error = on_error
        self.on_updated = on_updated
        self.last_status: InvoiceStatus | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        invoice_id: str,
        feed: ChangeFeed | None = None,
        source: InvoiceSource | None = None,
        **callbacks: InvoiceCallback | None,
    ) -> "InvoiceObserver":
        return cls(
            invoice_id,
            feed=feed,
            source=source,
            poll_interval=settings.realtime_poll_interval_seconds,
            **callbacks,
        )

    async def observe(self, invoice: InvoiceRead) -> None:
        """Compare against the last seen status and fire callbacks on a change."""
        if invoice.id != self.invoice_id or not is_ahead(invoice.status, self.last_status):
            return
        self.last_status = invoice.status

        if invoice.status == InvoiceStatus.PROCESSED:
            await _call(self.on_processed, invoice)
        elif invoice.status == InvoiceStatus.ERROR:
            await _call(self.on_error, invoice)
        await _call(self.on_updated, invoice)

    async def handle_event(self, event: ChangeEvent) -> None:
        if event.event_type == "DELETE":
            return
        await self.observe(event.invoice)

    async def poll_once(self) -> None:
        assert self.source is not None
        invoice = await self.source.fetch_invoice(self.invoice_id)
        if invoice is not None:
            await self.observe(invoice)


class OrganizationObserver(_Observer):
    """Watches every invoice of an organization (dashboard view).

    ``on_updated`` fires for every insert or update from the feed, and for
    status changes found by polling. The first poll only records a baseline.
    """

    def __init__(
        self,
        organization_id: str,
        feed: ChangeFeed | None = None,
        source: InvoiceSource | None = None,
        on_processed: InvoiceCallback | None = None,
        on_error: InvoiceCallback | None = None,
        on_updated: InvoiceCallback | None = None,
        poll_interval: float = 3.0,
    ) -> None:
        super().__init__(organization_channel(organization_id), feed, source, poll_interval)
        self.organization_id = organization_id
        self.on_processed = on_processed
        self.on_error = on_error
        self.on_updated = on_updated
        self.last_statuses: dict[str, InvoiceStatus] = {}
        self._baseline_taken = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        organization_id: str,
        feed: ChangeFeed | None = None,
        source: InvoiceSource | None = None,
        **callbacks: InvoiceCallback | None,
    ) -> "OrganizationObserver":
        return cls(
            organization_id,
            feed=feed,
            source=source,
            poll_interval=settings.realtime_poll_interval_seconds,
            **callbacks,
        )

    async def _status_changed(self, invoice: InvoiceRead) -> bool:
        if not is_ahead(invoice.status, self.last_statuses.get(invoice.id)):
            return False
        self.last_statuses[invoice.id] = invoice.status

        if invoice.status == InvoiceStatus.PROCESSED and invoice.requires_confirmation:
            await _call(self.on_processed, invoice)
        elif invoice.status == InvoiceStatus.ERROR:
            await _call(self.on_error, invoice)
        return True

    async def handle_event(self, event: ChangeEvent) -> None:
        if event.invoice.organization_id != self.organization_id:
            return
        if event.event_type == "DELETE":
            self.last_statuses.pop(event.invoice.id, None)
            return
        await self._status_changed(event.invoice)
        await _call(self.on_updated, event.invoice)

    async def poll_once(self) -> None:
        assert self.source is not None
        invoices = await self.source.list_invoices(self.organization_id)
        if not self._baseline_taken:
            for invoice in invoices:
                self.last_statuses.setdefault(invoice.id, invoice.status)
            self._baseline_taken = True
            return

        for invoice in invoices:
            if await self._status_changed(invoice):
                await _call(self.on_updated, invoice)
