import pytest

from apps.ledger.exceptions import TransportError
from apps.realtime.events import ChangeEvent, EventType
from apps.realtime.transport import ChannelStatus, LocalRealtimeClient
from apps.realtime.tests.support import settle


@pytest.mark.asyncio
class TestLocalRealtimeClient:

    async def test_subscribe_reports_subscribed(self, realtime_client):
        statuses = []
        channel = realtime_client.channel('bill:1')

        await channel.subscribe(lambda status, error: statuses.append(status))
        await settle()

        assert channel.joined
        assert statuses == [ChannelStatus.SUBSCRIBED]

    async def test_each_call_opens_a_new_channel(self, realtime_client):
        first = realtime_client.channel('bill:1')
        second = realtime_client.channel('bill:1')

        assert first is not second
        assert realtime_client.get_channels() == [first, second]

    async def test_publish_reaches_joined_channels_only(self, realtime_client):
        received = []
        joined = realtime_client.channel('bill:1').on_change('claims', received.append)
        realtime_client.channel('bill:2').on_change('claims', received.append)
        await joined.subscribe()

        event = ChangeEvent(event_type=EventType.INSERT, table='claims', new={'id': 'c1'})
        delivered = realtime_client.publish(event)
        await settle()

        assert delivered == 1
        assert received == [event.to_payload()]

    async def test_publish_routes_by_table(self, realtime_client):
        claims, items = [], []
        channel = realtime_client.channel('bill:1')
        channel.on_change('claims', claims.append).on_change('line_items', items.append)
        await channel.subscribe()

        realtime_client.publish({'event_type': 'DELETE', 'table': 'line_items', 'old': {'id': 'i1'}})
        await settle()

        assert claims == []
        assert len(items) == 1

    async def test_remove_channel_reports_closed(self, realtime_client):
        statuses = []
        channel = realtime_client.channel('bill:1')
        await channel.subscribe(lambda status, error: statuses.append(status))

        await realtime_client.remove_channel(channel)
        await settle()

        assert statuses == [ChannelStatus.SUBSCRIBED, ChannelStatus.CLOSED]
        assert realtime_client.get_channels() == []
        assert realtime_client.publish({'table': 'claims'}) == 0

    async def test_remove_channel_leaves_same_named_channel_joined(self, realtime_client):
        kept_received, removed_statuses = [], []
        kept = realtime_client.channel('bill:1').on_change('claims', kept_received.append)
        removed = realtime_client.channel('bill:1')
        await kept.subscribe()
        await removed.subscribe(lambda status, error: removed_statuses.append(status))

        await realtime_client.remove_channel(removed)
        delivered = realtime_client.publish({'event_type': 'INSERT', 'table': 'claims', 'new': {'id': 'c1'}})
        await settle()

        assert removed_statuses == [ChannelStatus.SUBSCRIBED, ChannelStatus.CLOSED]
        assert kept.joined
        assert realtime_client.get_channels() == [kept]
        assert delivered == 1
        assert len(kept_received) == 1

    async def test_fail_reports_error(self, realtime_client):
        reports = []
        channel = realtime_client.channel('bill:1')
        await channel.subscribe(lambda status, error: reports.append((status, error)))
        boom = ConnectionError('socket closed')

        channel.fail(ChannelStatus.TIMED_OUT, boom)
        await settle()

        assert reports[-1] == (ChannelStatus.TIMED_OUT, boom)
        assert not channel.joined

    async def test_closed_client_rejects_use(self):
        client = LocalRealtimeClient()
        statuses = []
        channel = client.channel('bill:1')
        await channel.subscribe(lambda status, error: statuses.append(status))

        client.close()
        await settle()

        assert statuses[-1] == ChannelStatus.CLOSED
        with pytest.raises(TransportError):
            client.channel('bill:1')
        with pytest.raises(TransportError):
            client.publish({'table': 'claims'})
