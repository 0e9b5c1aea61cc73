"""
Presence/change feed bridge.

Keeps one channel per bill on the realtime client and turns the row changes
it receives into handler calls:

- claim changes are routed by status (see ``route_claim_change``) to
  ``on_selection_change`` (paid) or ``on_active_selection_change``
  (selecting);
- line item changes go to ``on_item_change`` as
  ``{"action": created|updated|deleted, "item_id": ..., "item": row}``;
- every successful (re)connection triggers ``on_initial_fetch`` so changes
  missed while disconnected are picked up by a fresh read.

Lost connections are retried with exponential backoff. Handlers may be plain
functions or coroutines.
"""

import asyncio
import inspect
import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from django.conf import settings

from apps.ledger.exceptions import TransportError
from apps.ledger.validation import parse_identifier

from .events import (
    CLAIMS_TABLE,
    LINE_ITEMS_TABLE,
    ChangeEvent,
    ClaimRoute,
    EventType,
    MalformedChangeEvent,
    route_claim_change,
)
from .transport import ChannelStatus

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_SIZE = 256

ITEM_ACTIONS = {
    EventType.INSERT: 'created',
    EventType.UPDATE: 'updated',
    EventType.DELETE: 'deleted',
}


class ConnectionStatus(str, Enum):
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    DISCONNECTED = 'disconnected'
    RECONNECTING = 'reconnecting'


def reconnect_delay_ms(attempt: int, base_ms: int = 1000, max_ms: int = 30000) -> int:
    """Backoff before reconnect attempt ``attempt`` (0-based): base * 2^attempt, capped."""
    return min(base_ms * (2 ** attempt), max_ms)


@dataclass
class SubscriptionHandlers:
    on_selection_change: Optional[Callable[[ChangeEvent], Any]] = None
    on_active_selection_change: Optional[Callable[[ChangeEvent], Any]] = None
    on_item_change: Optional[Callable[[Dict[str, Any]], Any]] = None
    on_connection_status_change: Optional[Callable[[ConnectionStatus], Any]] = None
    on_error: Optional[Callable[[Exception], Any]] = None
    on_initial_fetch: Optional[Callable[[], Any]] = None


class BillSubscription:
    """
    Live subscription to one bill's claim and line item changes.

    Args:
        client: Realtime client handle (see ``LocalRealtimeClient``)
        bill_id: UUID of the bill
        handlers: Callbacks, all optional
        channel_prefix: Channel names are ``<prefix>:<bill_id>``
        base_delay_ms: First reconnect delay, defaults to REALTIME_RECONNECT_BASE_MS
        max_delay_ms: Reconnect delay cap, defaults to REALTIME_RECONNECT_MAX_MS
        sleep: Coroutine used to wait between reconnect attempts
        dedup_size: How many recent event keys are remembered
    """

    def __init__(
        self,
        client,
        bill_id: Any,
        handlers: Optional[SubscriptionHandlers] = None,
        *,
        channel_prefix: str = 'bill',
        base_delay_ms: Optional[int] = None,
        max_delay_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        dedup_size: int = DEFAULT_DEDUP_SIZE,
    ):
        self.bill_id = str(parse_identifier(bill_id, 'bill_id'))
        self.handlers = handlers or SubscriptionHandlers()
        self.channel_name = f"{channel_prefix}:{self.bill_id}"

        self._client = client
        self._base_delay_ms = base_delay_ms if base_delay_ms is not None else settings.REALTIME_RECONNECT_BASE_MS
        self._max_delay_ms = max_delay_ms if max_delay_ms is not None else settings.REALTIME_RECONNECT_MAX_MS
        self._sleep = sleep
        self._dedup_size = dedup_size

        self._channel = None
        self._status = ConnectionStatus.DISCONNECTED
        self._attempt = 0
        self._subscribing = False
        self._closed = False
        self._reconnect_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._recent: 'OrderedDict[tuple, None]' = OrderedDict()

    def __repr__(self):
        return f"<BillSubscription {self.channel_name} {self._status.value}>"

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status == ConnectionStatus.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        return self._attempt

    @property
    def channel(self):
        """The channel currently owned by this subscription, if any."""
        return self._channel

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> 'BillSubscription':
        await self._subscribe()
        return self

    async def reconnect(self) -> None:
        """Tear down and resubscribe now, resetting the backoff."""
        if self._closed:
            return
        logger.info("Manual reconnect of %s", self.channel_name)
        self._attempt = 0
        self._cancel_reconnect()
        self._subscribing = False
        await self._subscribe()

    async def handle_visibility_change(self, visible: bool) -> None:
        """
        React to the page coming back to the foreground.

        A backgrounded transport can die without reporting it, so a
        connection that claims to be up or coming up is rebuilt.
        """
        if visible and self._status in (ConnectionStatus.CONNECTED, ConnectionStatus.CONNECTING):
            await self.reconnect()

    async def close(self) -> None:
        """Stop reconnecting, leave the channel and cancel pending handler tasks."""
        if self._closed:
            return
        self._closed = True
        self._cancel_reconnect()
        await self._teardown()
        for task in list(self._tasks):
            task.cancel()
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def _subscribe(self) -> None:
        if self._closed or self._subscribing:
            return
        self._subscribing = True
        self._set_status(ConnectionStatus.CONNECTING)

        try:
            await self._teardown()
            channel = self._client.channel(self.channel_name)
            channel.on_change(CLAIMS_TABLE, self._on_claim_payload)
            channel.on_change(LINE_ITEMS_TABLE, self._on_item_payload)
            self._channel = channel
            await channel.subscribe(
                lambda status, error=None: self._on_channel_status(channel, status, error)
            )
        except TransportError as exc:
            logger.warning("Subscribe to %s failed: %s", self.channel_name, exc)
            self._subscribe_failed(exc)
        except Exception as exc:
            logger.exception("Unexpected error subscribing to %s", self.channel_name)
            self._subscribe_failed(exc)

    def _subscribe_failed(self, exc: Exception) -> None:
        self._subscribing = False
        self._report_error(exc)
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._schedule_reconnect()

    async def _teardown(self) -> None:
        channel, self._channel = self._channel, None
        if channel is None:
            return
        try:
            await self._client.remove_channel(channel)
        except TransportError as exc:
            logger.debug("Ignoring error while removing %s: %s", channel, exc)

    def _on_channel_status(self, channel, status, error=None) -> None:
        if channel is not self._channel:
            logger.debug("Ignoring %s from stale channel %s", status, channel)
            return

        logger.debug("Channel %s status %s", self.channel_name, status)
        if status == ChannelStatus.SUBSCRIBED:
            self._subscribing = False
            self._attempt = 0
            self._set_status(ConnectionStatus.CONNECTED)
            self._dispatch(self.handlers.on_initial_fetch)
            return

        if status == ChannelStatus.CLOSED and self._subscribing:
            logger.debug("Ignoring close of %s while subscribing", self.channel_name)
            return

        self._subscribing = False
        if self._closed:
            return
        if status != ChannelStatus.CLOSED:
            self._report_error(error or TransportError(f"Channel {self.channel_name} reported {status}"))
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closed or self._subscribing or self._reconnect_task is not None:
            return
        delay = reconnect_delay_ms(self._attempt, self._base_delay_ms, self._max_delay_ms)
        self._attempt += 1
        logger.info("Reconnecting %s in %d ms (attempt %d)", self.channel_name, delay, self._attempt)
        self._set_status(ConnectionStatus.RECONNECTING)
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay_ms: int) -> None:
        await self._sleep(delay_ms / 1000)
        self._reconnect_task = None
        await self._subscribe()

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def _parse(self, payload: Any) -> Optional[ChangeEvent]:
        if self._closed:
            return None
        try:
            event = ChangeEvent.from_payload(payload)
        except MalformedChangeEvent as exc:
            logger.warning("Dropping malformed change on %s: %s", self.channel_name, exc)
            return None

        if event.bill_id != self.bill_id:
            return None

        key = event.dedup_key
        if key in self._recent:
            logger.debug("Dropping duplicate change %s", key)
            return None
        self._recent[key] = None
        if len(self._recent) > self._dedup_size:
            self._recent.popitem(last=False)
        return event

    def _on_claim_payload(self, payload: Any) -> None:
        event = self._parse(payload)
        if event is None:
            return
        try:
            route = route_claim_change(event)
        except MalformedChangeEvent as exc:
            logger.warning("Dropping unroutable claim change on %s: %s", self.channel_name, exc)
            return

        if route == ClaimRoute.PAID:
            self._dispatch(self.handlers.on_selection_change, event)
        else:
            self._dispatch(self.handlers.on_active_selection_change, event)

    def _on_item_payload(self, payload: Any) -> None:
        event = self._parse(payload)
        if event is None:
            return
        self._dispatch(self.handlers.on_item_change, {
            'action': ITEM_ACTIONS[event.event_type],
            'item_id': event.record_id,
            'item': event.record,
        })

    # -------------------------------------------------------------------------
    # Handler plumbing
    # -------------------------------------------------------------------------

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        self._dispatch(self.handlers.on_connection_status_change, status)

    def _report_error(self, exc: Exception) -> None:
        self._dispatch(self.handlers.on_error, exc)

    def _dispatch(self, handler: Optional[Callable], *args) -> None:
        if handler is None:
            return
        try:
            result = handler(*args)
        except Exception:
            logger.exception("Handler %r failed on %s", handler, self.channel_name)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Handler failed on %s", self.channel_name, exc_info=exc)


async def subscribe(client, bill_id: Any, handlers: Optional[SubscriptionHandlers] = None,
                    **options) -> BillSubscription:
    """Create and start a BillSubscription."""
    return await BillSubscription(client, bill_id, handlers, **options).start()
