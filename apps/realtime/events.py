"""
Row-level change events and claim routing.

A ChangeEvent is one INSERT/UPDATE/DELETE notification for a row of the
``claims`` or ``line_items`` table, carrying JSON snapshots of the row after
(``new``) and before (``old``) the change.

SELECTING and PAID claims live in the same table, so subscribers cannot
route on table identity. ``route_claim_change`` decides from the before and
after status which handler a claim change belongs to.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from apps.ledger.models import Claim, ClaimStatus, LineItem

CLAIMS_TABLE = Claim._meta.db_table
LINE_ITEMS_TABLE = LineItem._meta.db_table
TABLES = (CLAIMS_TABLE, LINE_ITEMS_TABLE)


class EventType(str, Enum):
    INSERT = 'INSERT'
    UPDATE = 'UPDATE'
    DELETE = 'DELETE'


class ClaimRoute(str, Enum):
    PAID = 'paid'
    SELECTING = 'selecting'


class MalformedChangeEvent(ValueError):
    """Payload that cannot be parsed or routed."""


@dataclass(frozen=True)
class ChangeEvent:
    event_type: EventType
    table: str
    new: Dict[str, Any] = field(default_factory=dict)
    old: Dict[str, Any] = field(default_factory=dict)
    commit_timestamp: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> 'ChangeEvent':
        """
        Parse a transport payload.

        Args:
            payload: ``{event_type, table, new, old, commit_timestamp}``

        Raises:
            MalformedChangeEvent: If the payload has the wrong shape
        """
        if isinstance(payload, ChangeEvent):
            return payload
        if not isinstance(payload, Mapping):
            raise MalformedChangeEvent("Change payload must be an object")

        try:
            event_type = EventType(payload.get('event_type'))
        except ValueError:
            raise MalformedChangeEvent(f"Unknown event type {payload.get('event_type')!r}")

        table = payload.get('table')
        if table not in TABLES:
            raise MalformedChangeEvent(f"Unknown table {table!r}")

        new = payload.get('new') or {}
        old = payload.get('old') or {}
        if not isinstance(new, Mapping) or not isinstance(old, Mapping):
            raise MalformedChangeEvent("Row snapshots must be objects")

        return cls(
            event_type=event_type,
            table=table,
            new=dict(new),
            old=dict(old),
            commit_timestamp=payload.get('commit_timestamp'),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            'event_type': self.event_type.value,
            'table': self.table,
            'new': dict(self.new),
            'old': dict(self.old),
            'commit_timestamp': self.commit_timestamp,
        }

    @property
    def record(self) -> Dict[str, Any]:
        """The row as it is after the change, or as it was before a delete."""
        if self.event_type == EventType.DELETE:
            return self.old
        return self.new or self.old

    @property
    def record_id(self) -> Optional[str]:
        return self.record.get('id')

    @property
    def bill_id(self) -> Optional[str]:
        return self.record.get('bill_id') or self.old.get('bill_id')

    @property
    def dedup_key(self) -> Tuple[str, str, Optional[str], Optional[str]]:
        return (self.table, self.event_type.value, self.record_id, self.commit_timestamp)


def route_claim_change(event: ChangeEvent) -> ClaimRoute:
    """
    Decide which handler a claim change goes to.

    A SELECTING -> PAID transition goes to the paid handler only. Otherwise
    the status after the change (before it, for deletes) decides.

    Raises:
        MalformedChangeEvent: If the event is not a claim change or has no
            recognizable status
    """
    if event.table != CLAIMS_TABLE:
        raise MalformedChangeEvent(f"Not a claim change: {event.table}")

    old_status = event.old.get('status')
    new_status = event.new.get('status')

    if old_status == ClaimStatus.SELECTING and new_status == ClaimStatus.PAID:
        return ClaimRoute.PAID

    status = old_status if event.event_type == EventType.DELETE else new_status
    if status == ClaimStatus.PAID:
        return ClaimRoute.PAID
    if status == ClaimStatus.SELECTING:
        return ClaimRoute.SELECTING
    raise MalformedChangeEvent(f"Claim change without a known status: {status!r}")


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def claim_snapshot(claim: Claim) -> Dict[str, Any]:
    """JSON-safe row snapshot of a claim."""
    return {
        'id': str(claim.id),
        'bill_id': str(claim.bill_id),
        'guest_name': claim.guest_name,
        'session_id': str(claim.session_id),
        'item_quantities': dict(claim.item_quantities) if isinstance(claim.item_quantities, dict) else {},
        'tip_amount': str(claim.tip_amount),
        'status': str(claim.status),
        'payment_method': claim.payment_method,
        'submitted_at': _iso(claim.submitted_at),
        'received': claim.received,
        'received_at': _iso(claim.received_at),
        'expires_at': _iso(claim.expires_at),
        'created_at': _iso(claim.created_at),
        'updated_at': _iso(claim.updated_at),
    }


def line_item_snapshot(item: LineItem) -> Dict[str, Any]:
    """JSON-safe row snapshot of a line item."""
    return {
        'id': str(item.id),
        'bill_id': str(item.bill_id),
        'name': item.name,
        'quantity': str(item.quantity),
        'price_per_unit': str(item.price_per_unit),
        'total_price': str(item.total_price),
        'position': item.position,
        'created_at': _iso(item.created_at),
        'updated_at': _iso(item.updated_at),
    }
