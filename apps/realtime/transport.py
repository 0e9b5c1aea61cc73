"""
In-process realtime transport.

``LocalRealtimeClient`` is the process's single long-lived connection handle
to the change feed. It fans published change events out to subscribed
channels. Publishing is thread-safe (Django request threads publish, an
asyncio loop consumes); delivery always happens on the subscriber's loop.

Channel status callbacks receive ``(status, error)`` where status is one of
SUBSCRIBED, CLOSED, CHANNEL_ERROR, TIMED_OUT.
"""

import asyncio
import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from apps.ledger.exceptions import TransportError

from .events import ChangeEvent

logger = logging.getLogger(__name__)


class ChannelStatus(str, Enum):
    SUBSCRIBED = 'SUBSCRIBED'
    CLOSED = 'CLOSED'
    CHANNEL_ERROR = 'CHANNEL_ERROR'
    TIMED_OUT = 'TIMED_OUT'


StatusCallback = Callable[[ChannelStatus, Optional[Exception]], Any]


class LocalChannel:
    """One named subscription on a LocalRealtimeClient."""

    def __init__(self, client: 'LocalRealtimeClient', name: str):
        self.client = client
        self.name = name
        self.joined = False
        self._handlers: Dict[str, List[Callable[[Dict[str, Any]], Any]]] = {}
        self._status_callback: Optional[StatusCallback] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def __repr__(self):
        return f"<LocalChannel {self.name} joined={self.joined}>"

    def on_change(self, table: str, callback: Callable[[Dict[str, Any]], Any]) -> 'LocalChannel':
        """Register a callback for change payloads of one table."""
        self._handlers.setdefault(table, []).append(callback)
        return self

    async def subscribe(self, status_callback: Optional[StatusCallback] = None) -> 'LocalChannel':
        """
        Join the channel.

        The status callback is invoked on the caller's loop once the join
        completes.

        Raises:
            TransportError: If the client has been closed
        """
        self._loop = asyncio.get_running_loop()
        self._status_callback = status_callback
        self.client._attach(self)
        self.joined = True
        self._emit_status(ChannelStatus.SUBSCRIBED)
        return self

    async def unsubscribe(self) -> None:
        self._close(ChannelStatus.CLOSED)

    def fail(self, status: ChannelStatus = ChannelStatus.CHANNEL_ERROR, error: Optional[Exception] = None) -> None:
        """Drop the channel as if the underlying connection died."""
        self._close(status, error)

    def _close(self, status: ChannelStatus, error: Optional[Exception] = None) -> None:
        was_joined = self.joined
        self.joined = False
        self.client._detach(self)
        if was_joined:
            self._emit_status(status, error)

    def _call_soon(self, callback: Callable, *args) -> None:
        if self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # Loop already closed
            logger.debug("Dropping callback for %s, loop is closed", self.name)

    def _emit_status(self, status: ChannelStatus, error: Optional[Exception] = None) -> None:
        if self._status_callback is not None:
            self._call_soon(self._status_callback, status, error)

    def _deliver(self, table: str, payload: Dict[str, Any]) -> None:
        for callback in self._handlers.get(table, ()):
            self._call_soon(callback, payload)


class LocalRealtimeClient:
    """
    Thread-safe in-process change feed.

    Create one per process at startup and close it at shutdown.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._channels: List[LocalChannel] = []
        self._joined: List[LocalChannel] = []
        self.closed = False

    def channel(self, name: str) -> LocalChannel:
        """
        Open a new channel.

        Every call returns a separate channel, even when another channel
        already uses the name.

        Raises:
            TransportError: If the client has been closed
        """
        with self._lock:
            if self.closed:
                raise TransportError("Realtime client is closed")
            channel = LocalChannel(self, name)
            self._channels.append(channel)
            return channel

    def get_channels(self) -> List[LocalChannel]:
        with self._lock:
            return list(self._channels)

    async def remove_channel(self, channel: LocalChannel) -> None:
        """Unsubscribe this channel and forget it. Other channels are untouched."""
        with self._lock:
            if channel in self._channels:
                self._channels.remove(channel)
        await channel.unsubscribe()

    def publish(self, event: Any) -> int:
        """
        Deliver a change event to every joined channel.

        Args:
            event: ChangeEvent or payload mapping

        Returns:
            Number of channels the event was delivered to

        Raises:
            TransportError: If the client has been closed
        """
        payload = event.to_payload() if isinstance(event, ChangeEvent) else event
        table = payload.get('table') if isinstance(payload, dict) else None

        with self._lock:
            if self.closed:
                raise TransportError("Realtime client is closed")
            channels = list(self._joined)

        for channel in channels:
            channel._deliver(table, payload)
        return len(channels)

    def close(self) -> None:
        """Close every channel. Further subscribes and publishes fail."""
        with self._lock:
            if self.closed:
                return
            self.closed = True
            channels = list(self._channels)
            self._channels.clear()

        for channel in channels:
            channel._close(ChannelStatus.CLOSED)
        logger.info("Realtime client closed (%d channel(s))", len(channels))

    def _attach(self, channel: LocalChannel) -> None:
        with self._lock:
            if self.closed:
                raise TransportError("Realtime client is closed")
            if channel not in self._joined:
                self._joined.append(channel)

    def _detach(self, channel: LocalChannel) -> None:
        with self._lock:
            if channel in self._joined:
                self._joined.remove(channel)
