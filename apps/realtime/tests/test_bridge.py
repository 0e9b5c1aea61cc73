"""
Tests for the bill subscription bridge.

Reconnect timing is driven by an injected sleep so no test waits on the
wall clock.
"""

import asyncio
import logging
import pytest
import pytest_asyncio
from uuid import uuid4

from apps.ledger.exceptions import InvalidIdentifierError, TransportError
from apps.realtime.bridge import (
    BillSubscription,
    ConnectionStatus,
    SubscriptionHandlers,
    reconnect_delay_ms,
    subscribe,
)
from apps.realtime.transport import ChannelStatus
from apps.realtime.tests.support import FakeSleep, Recorder, settle


class UnreachableClient:
    """Client whose channels can never be created."""

    def __init__(self):
        self.attempts = 0

    def channel(self, name):
        self.attempts += 1
        raise TransportError("connection refused")

    async def remove_channel(self, channel):
        pass


class BrokenClient(UnreachableClient):
    """Client that fails with something other than a transport error."""

    def channel(self, name):
        self.attempts += 1
        raise RuntimeError("socket library bug")


class HoldingChannel:
    """Channel whose join stays pending until ``released`` is set."""

    def __init__(self, name):
        self.name = name
        self.released = asyncio.Event()
        self.status_callback = None

    def on_change(self, table, callback):
        return self

    async def subscribe(self, status_callback=None):
        self.status_callback = status_callback
        await self.released.wait()
        status_callback(ChannelStatus.SUBSCRIBED, None)
        return self


class HoldingClient:
    """Client that keeps every subscription at CONNECTING until released."""

    def __init__(self):
        self.channels = []
        self.removed = []

    def channel(self, name):
        channel = HoldingChannel(name)
        self.channels.append(channel)
        return channel

    async def remove_channel(self, channel):
        self.removed.append(channel)


# =============================================================================
# Backoff
# =============================================================================

class TestReconnectDelay:

    def test_sequence(self):
        assert [reconnect_delay_ms(n) for n in range(7)] == [1000, 2000, 4000, 8000, 16000, 30000, 30000]

    def test_custom_bounds(self):
        assert reconnect_delay_ms(3, base_ms=100, max_ms=500) == 500

    def test_rejects_malformed_bill_id(self, realtime_client):
        with pytest.raises(InvalidIdentifierError):
            BillSubscription(realtime_client, 'not-a-bill')


@pytest.mark.asyncio
class TestReconnect:

    async def test_backoff_while_unreachable(self, bill_id, recorder):
        sleep = FakeSleep(limit=7)
        client = UnreachableClient()

        subscription = await subscribe(client, bill_id, recorder.handlers(), sleep=sleep)
        for _ in range(50):
            if len(sleep.delays) == 7:
                break
            await settle()

        assert sleep.delays == [1000, 2000, 4000, 8000, 16000, 30000, 30000]
        assert subscription.connection_status == ConnectionStatus.RECONNECTING
        assert all(isinstance(error, TransportError) for error in recorder.errors)
        assert recorder.fetches == 0

        await subscription.close()
        assert subscription.connection_status == ConnectionStatus.DISCONNECTED

    async def test_channel_error_reconnects_and_refetches(self, realtime_client, bill_id, recorder):
        sleep = FakeSleep()
        subscription = await subscribe(realtime_client, bill_id, recorder.handlers(), sleep=sleep)
        await settle()
        first_channel = subscription.channel

        first_channel.fail(ChannelStatus.CHANNEL_ERROR)
        await settle()

        assert sleep.delays == [1000]
        assert subscription.is_connected
        assert subscription.reconnect_attempts == 0
        assert recorder.fetches == 2
        assert len(recorder.errors) == 1
        assert recorder.statuses == [
            ConnectionStatus.CONNECTING,
            ConnectionStatus.CONNECTED,
            ConnectionStatus.DISCONNECTED,
            ConnectionStatus.RECONNECTING,
            ConnectionStatus.CONNECTING,
            ConnectionStatus.CONNECTED,
        ]
        await subscription.close()

    async def test_timed_out_is_treated_as_error(self, realtime_client, bill_id, recorder):
        subscription = await subscribe(realtime_client, bill_id, recorder.handlers(), sleep=FakeSleep(limit=1))
        await settle()

        subscription.channel.fail(ChannelStatus.TIMED_OUT)
        await settle()

        assert len(recorder.errors) == 1
        assert subscription.connection_status == ConnectionStatus.RECONNECTING
        await subscription.close()

    async def test_stale_channel_status_is_ignored(self, realtime_client, bill_id, recorder):
        subscription = await subscribe(realtime_client, bill_id, recorder.handlers(), sleep=FakeSleep())
        await settle()
        old_channel = subscription.channel

        await subscription.reconnect()
        await settle()
        old_channel._status_callback(ChannelStatus.CHANNEL_ERROR, None)
        await settle()

        assert subscription.is_connected
        assert recorder.errors == []
        await subscription.close()

    async def test_manual_reconnect_resets_backoff(self, bill_id, recorder):
        sleep = FakeSleep(limit=3)
        subscription = await subscribe(UnreachableClient(), bill_id, recorder.handlers(), sleep=sleep)
        for _ in range(20):
            await settle()
        assert subscription.reconnect_attempts == 3

        await subscription.reconnect()

        assert subscription.reconnect_attempts == 1
        await subscription.close()

    async def test_visibility_forces_reconnect_when_connected(self, realtime_client, bill_id, recorder):
        subscription = await subscribe(realtime_client, bill_id, recorder.handlers(), sleep=FakeSleep())
        await settle()

        await subscription.handle_visibility_change(False)
        await settle()
        assert recorder.fetches == 1

        await subscription.handle_visibility_change(True)
        await settle()
        assert recorder.fetches == 2
        assert subscription.is_connected
        await subscription.close()

    async def test_close_stops_everything(self, realtime_client, bill_id, recorder, claim_payload):
        subscription = await subscribe(realtime_client, bill_id, recorder.handlers(), sleep=FakeSleep())
        await settle()

        await subscription.close()
        realtime_client.publish(claim_payload('INSERT', new_status='SELECTING'))
        await settle()

        assert recorder.selecting == []
        assert recorder.errors == []
        assert subscription.connection_status == ConnectionStatus.DISCONNECTED

    async def test_unexpected_failure_still_reconnects(self, bill_id, recorder, caplog):
        sleep = FakeSleep(limit=2)
        client = BrokenClient()

        with caplog.at_level(logging.ERROR, logger='apps.realtime.bridge'):
            subscription = await subscribe(client, bill_id, recorder.handlers(), sleep=sleep)
            for _ in range(20):
                await settle()

        assert sleep.delays == [1000, 2000]
        assert client.attempts == 2
        assert len(recorder.errors) == 2
        assert all(isinstance(error, RuntimeError) for error in recorder.errors)
        assert subscription.connection_status == ConnectionStatus.RECONNECTING
        assert 'Unexpected error subscribing' in caplog.text
        await subscription.close()


# =============================================================================
# Subscribe in progress
# =============================================================================

@pytest.mark.asyncio
class TestSubscribeInProgress:

    @pytest.fixture
    def holding_client(self):
        return HoldingClient()

    async def test_close_while_subscribing_is_ignored(self, holding_client, bill_id, recorder):
        sleep = FakeSleep()
        subscription = BillSubscription(holding_client, bill_id, recorder.handlers(), sleep=sleep)
        starting = asyncio.ensure_future(subscription.start())
        await settle()
        channel = holding_client.channels[0]

        channel.status_callback(ChannelStatus.CLOSED, None)
        await settle()

        assert sleep.delays == []
        assert subscription.connection_status == ConnectionStatus.CONNECTING
        assert recorder.errors == []

        channel.released.set()
        await starting
        assert subscription.is_connected
        assert recorder.fetches == 1
        await subscription.close()

    async def test_second_start_is_a_noop(self, holding_client, bill_id, recorder):
        subscription = BillSubscription(holding_client, bill_id, recorder.handlers(), sleep=FakeSleep())
        starting = asyncio.ensure_future(subscription.start())
        await settle()

        await subscription.start()

        assert len(holding_client.channels) == 1
        assert subscription.connection_status == ConnectionStatus.CONNECTING
        holding_client.channels[0].released.set()
        await starting
        assert subscription.is_connected
        await subscription.close()

    async def test_visibility_while_connecting_resubscribes(self, holding_client, bill_id, recorder):
        subscription = BillSubscription(holding_client, bill_id, recorder.handlers(), sleep=FakeSleep())
        starting = asyncio.ensure_future(subscription.start())
        await settle()

        resubscribing = asyncio.ensure_future(subscription.handle_visibility_change(True))
        await settle()
        first, second = holding_client.channels

        assert holding_client.removed == [first]
        assert subscription.channel is second

        # The abandoned join completing must not count as connected
        first.released.set()
        await starting
        assert subscription.connection_status == ConnectionStatus.CONNECTING
        assert recorder.fetches == 0

        second.released.set()
        await resubscribing
        assert subscription.is_connected
        assert recorder.fetches == 1
        await subscription.close()

    async def test_visibility_while_disconnected_does_nothing(self, holding_client, bill_id, recorder):
        subscription = BillSubscription(holding_client, bill_id, recorder.handlers(), sleep=FakeSleep())

        await subscription.handle_visibility_change(True)

        assert holding_client.channels == []
        assert subscription.connection_status == ConnectionStatus.DISCONNECTED
        assert recorder.statuses == []

    async def test_visibility_while_reconnecting_waits_for_backoff(self, bill_id, recorder):
        sleep = FakeSleep(limit=1)
        unreachable = UnreachableClient()
        subscription = await subscribe(unreachable, bill_id, recorder.handlers(), sleep=sleep)
        await settle()
        assert subscription.connection_status == ConnectionStatus.RECONNECTING

        await subscription.handle_visibility_change(True)
        await settle()

        assert unreachable.attempts == 1
        assert sleep.delays == [1000]
        assert subscription.connection_status == ConnectionStatus.RECONNECTING
        await subscription.close()


# =============================================================================
# Several subscriptions on one bill
# =============================================================================

@pytest.mark.asyncio
class TestSharedBill:

    @pytest_asyncio.fixture
    async def pair(self, realtime_client, bill_id):
        first_recorder, second_recorder = Recorder(), Recorder()
        first = await subscribe(realtime_client, bill_id, first_recorder.handlers(), sleep=FakeSleep())
        second = await subscribe(realtime_client, bill_id, second_recorder.handlers(), sleep=FakeSleep())
        await settle()
        yield (first, first_recorder), (second, second_recorder)
        await first.close()
        await second.close()

    async def test_subscriptions_own_separate_channels(self, realtime_client, pair):
        (first, _), (second, _) = pair

        assert first.channel is not second.channel
        assert len(realtime_client.get_channels()) == 2

    async def test_reconnect_of_one_keeps_the_other(self, realtime_client, pair, claim_payload):
        (first, first_recorder), (second, second_recorder) = pair

        await second.reconnect()
        await settle()
        realtime_client.publish(claim_payload('INSERT', new_status='SELECTING'))
        await settle()

        assert first.is_connected and second.is_connected
        assert len(first_recorder.selecting) == 1
        assert len(second_recorder.selecting) == 1
        assert first_recorder.errors == []
        assert first_recorder.fetches == 1

    async def test_close_of_one_keeps_the_other(self, realtime_client, pair, claim_payload):
        (first, first_recorder), (second, second_recorder) = pair

        await second.close()
        await settle()
        realtime_client.publish(claim_payload('UPDATE', new_status='PAID', old_status='SELECTING'))
        await settle()

        assert first.is_connected
        assert len(first_recorder.paid) == 1
        assert second_recorder.paid == []
        assert first_recorder.statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]


# =============================================================================
# Event routing
# =============================================================================

@pytest.mark.asyncio
class TestEventRouting:

    @pytest_asyncio.fixture
    async def connected(self, realtime_client, bill_id, recorder):
        subscription = await subscribe(realtime_client, bill_id, recorder.handlers(), sleep=FakeSleep())
        await settle()
        yield subscription
        await subscription.close()

    async def test_submission_goes_to_paid_handler_only(self, realtime_client, connected, recorder, claim_payload):
        realtime_client.publish(claim_payload('UPDATE', new_status='PAID', old_status='SELECTING'))
        await settle()

        assert len(recorder.paid) == 1
        assert recorder.selecting == []

    async def test_selection_changes(self, realtime_client, connected, recorder, claim_payload):
        realtime_client.publish(claim_payload('INSERT', new_status='SELECTING'))
        realtime_client.publish(claim_payload('DELETE', old_status='SELECTING'))
        await settle()

        assert len(recorder.selecting) == 2
        assert recorder.paid == []

    async def test_duplicates_are_dropped(self, realtime_client, connected, recorder, claim_payload):
        payload = claim_payload('INSERT', new_status='SELECTING')

        realtime_client.publish(payload)
        realtime_client.publish(dict(payload))
        await settle()

        assert len(recorder.selecting) == 1

    async def test_other_bills_are_ignored(self, realtime_client, connected, recorder, claim_payload):
        realtime_client.publish(claim_payload('INSERT', new_status='SELECTING', bill=str(uuid4())))
        await settle()

        assert recorder.selecting == []

    async def test_malformed_change_is_dropped(self, realtime_client, connected, recorder, claim_payload, caplog):
        payload = claim_payload('INSERT', new_status='SELECTING')
        payload['new']['status'] = 'LOST'

        with caplog.at_level(logging.WARNING, logger='apps.realtime.bridge'):
            realtime_client.publish(payload)
            realtime_client.publish({'event_type': 'INSERT', 'table': 'claims', 'new': 'garbage'})
            await settle()

        assert recorder.paid == recorder.selecting == []
        assert recorder.errors == []
        assert len(caplog.records) == 2
        assert connected.is_connected

    async def test_item_changes(self, realtime_client, connected, recorder, bill_id):
        item = {'id': str(uuid4()), 'bill_id': bill_id, 'name': 'Soup'}

        realtime_client.publish({'event_type': 'INSERT', 'table': 'line_items', 'new': item,
                                 'commit_timestamp': 't1'})
        realtime_client.publish({'event_type': 'DELETE', 'table': 'line_items', 'old': item,
                                 'commit_timestamp': 't2'})
        await settle()

        assert recorder.items == [
            {'action': 'created', 'item_id': item['id'], 'item': item},
            {'action': 'deleted', 'item_id': item['id'], 'item': item},
        ]

    async def test_failing_handler_is_contained(self, realtime_client, bill_id, claim_payload, caplog):
        calls = []

        def broken(event):
            calls.append(event)
            raise RuntimeError('boom')

        async def broken_async(event):
            calls.append(event)
            raise RuntimeError('async boom')

        handlers = SubscriptionHandlers(on_selection_change=broken, on_active_selection_change=broken_async)
        subscription = await subscribe(realtime_client, bill_id, handlers, sleep=FakeSleep())
        await settle()

        with caplog.at_level(logging.ERROR, logger='apps.realtime.bridge'):
            realtime_client.publish(claim_payload('INSERT', new_status='PAID'))
            realtime_client.publish(claim_payload('INSERT', new_status='SELECTING'))
            await settle()

        assert len(calls) == 2
        assert len([r for r in caplog.records if r.levelno == logging.ERROR]) == 2
        assert subscription.is_connected
        await subscription.close()

    async def test_async_initial_fetch(self, realtime_client, bill_id):
        fetched = asyncio.Event()

        async def fetch():
            fetched.set()

        subscription = await subscribe(realtime_client, bill_id, SubscriptionHandlers(on_initial_fetch=fetch))
        await asyncio.wait_for(fetched.wait(), timeout=1)

        assert subscription.is_connected
        await subscription.close()
