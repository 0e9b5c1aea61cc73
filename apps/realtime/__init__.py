"""
Realtime App - Change Feed and Live Presence

Publishes committed Claim and LineItem changes to an in-process realtime
client and lets consumers follow one bill live.

Architecture:
- events: ChangeEvent, claim routing, row snapshots
- feed: signal receivers publishing changes after commit
- transport: LocalRealtimeClient / LocalChannel
- bridge: BillSubscription with reconnect backoff and de-duplication
- live_view: LiveBillView consumer
"""
