import json
import pytest
from decimal import Decimal

from apps.ledger.models import Bill, Claim, LineItem
from apps.realtime.events import (
    ChangeEvent,
    ClaimRoute,
    EventType,
    MalformedChangeEvent,
    claim_snapshot,
    line_item_snapshot,
    route_claim_change,
)


# =============================================================================
# Parsing
# =============================================================================

class TestChangeEventParsing:

    def test_from_payload(self, claim_payload, bill_id):
        event = ChangeEvent.from_payload(claim_payload('INSERT', new_status='SELECTING'))

        assert event.event_type is EventType.INSERT
        assert event.table == 'claims'
        assert event.bill_id == bill_id
        assert event.old == {}

    @pytest.mark.parametrize('payload', [
        None,
        'INSERT',
        {'event_type': 'TRUNCATE', 'table': 'claims'},
        {'event_type': 'INSERT', 'table': 'bills'},
        {'event_type': 'INSERT', 'table': 'claims', 'new': ['not', 'a', 'row']},
    ])
    def test_malformed_payloads(self, payload):
        with pytest.raises(MalformedChangeEvent):
            ChangeEvent.from_payload(payload)

    def test_delete_record_is_old_row(self, claim_payload):
        payload = claim_payload('DELETE', old_status='PAID')
        event = ChangeEvent.from_payload(payload)

        assert event.record == payload['old']
        assert event.record_id == payload['old']['id']

    def test_dedup_key(self, claim_payload):
        payload = claim_payload('UPDATE', new_status='SELECTING', old_status='SELECTING')
        first = ChangeEvent.from_payload(payload)
        second = ChangeEvent.from_payload(dict(payload))
        later = ChangeEvent.from_payload(dict(payload, commit_timestamp='2026-01-01T12:00:01+00:00'))

        assert first.dedup_key == second.dedup_key
        assert first.dedup_key != later.dedup_key

    def test_to_payload_is_inverse(self, claim_payload):
        payload = claim_payload('INSERT', new_status='PAID')

        assert ChangeEvent.from_payload(payload).to_payload() == payload


# =============================================================================
# Claim routing
# =============================================================================

class TestRouteClaimChange:

    @pytest.mark.parametrize('event_type, new_status, old_status, route', [
        ('UPDATE', 'PAID', 'SELECTING', ClaimRoute.PAID),
        ('INSERT', 'SELECTING', None, ClaimRoute.SELECTING),
        ('UPDATE', 'SELECTING', 'SELECTING', ClaimRoute.SELECTING),
        ('UPDATE', 'PAID', 'PAID', ClaimRoute.PAID),
        ('INSERT', 'PAID', None, ClaimRoute.PAID),
        ('DELETE', None, 'SELECTING', ClaimRoute.SELECTING),
        ('DELETE', None, 'PAID', ClaimRoute.PAID),
    ])
    def test_routes(self, claim_payload, event_type, new_status, old_status, route):
        event = ChangeEvent.from_payload(claim_payload(event_type, new_status, old_status))

        assert route_claim_change(event) is route

    def test_missing_status(self, claim_payload):
        payload = claim_payload('INSERT', new_status='SELECTING')
        del payload['new']['status']

        with pytest.raises(MalformedChangeEvent):
            route_claim_change(ChangeEvent.from_payload(payload))

    def test_line_item_event_is_not_routable(self):
        event = ChangeEvent(event_type=EventType.INSERT, table='line_items', new={'id': 'x'})

        with pytest.raises(MalformedChangeEvent):
            route_claim_change(event)


# =============================================================================
# Snapshots
# =============================================================================

@pytest.mark.django_db
class TestSnapshots:

    def test_snapshots_are_json_safe(self):
        bill = Bill.objects.create(payer_name='Alice', payment_handle='alice')
        item = LineItem.objects.create(bill=bill, name='Soup', quantity=Decimal('1.5'),
                                       price_per_unit=Decimal('4.00'))
        claim = Claim.objects.create(bill=bill, guest_name='Bob', session_id=bill.share_token,
                                     item_quantities={str(item.id): 1.5},
                                     expires_at=bill.created_at)

        claim_row = json.loads(json.dumps(claim_snapshot(claim)))
        item_row = json.loads(json.dumps(line_item_snapshot(item)))

        assert claim_row['status'] == 'SELECTING'
        assert claim_row['bill_id'] == str(bill.id)
        assert claim_row['item_quantities'] == {str(item.id): 1.5}
        assert item_row['total_price'] == '6.00'
