"""
Payer console service.

Read-side aggregation over a bill's items and claims: what the bill is worth,
how much guests have claimed, what the payer has confirmed as received and
how much of each item is still up for grabs.
"""

from decimal import Decimal
from typing import Any, Dict, Iterable, List

from django.utils import timezone

from apps.ledger.exceptions import ValidationError
from apps.ledger.models import Claim, ClaimStatus, LineItem
from apps.ledger.services import get_bill_id

from .reconciler import (
    RemainingView,
    claim_items_amount,
    claim_tip,
    claimed_quantity,
    counted_claims,
    item_prices,
    remaining_quantity,
)

ZERO = Decimal('0.00')


def parse_view(view: Any, default: RemainingView = RemainingView.PAID) -> RemainingView:
    """Parse a ``paid``/``live`` view name."""
    if view is None or view == '':
        return default
    if isinstance(view, RemainingView):
        return view
    try:
        return RemainingView(str(view).lower())
    except ValueError:
        raise ValidationError("view must be 'paid' or 'live'")


def annotate_claim_totals(claims: Iterable[Claim], items: Iterable[LineItem]) -> List[Claim]:
    """
    Attach ``items_amount`` and ``total`` to each claim.

    Entries for items that are no longer on the bill contribute nothing.
    """
    prices = item_prices(items)
    annotated = []
    for claim in claims:
        claim.items_amount = claim_items_amount(claim, prices)
        claim.total = claim.items_amount + claim_tip(claim)
        annotated.append(claim)
    return annotated


def _load(bill_id: Any):
    bill_uuid = get_bill_id(bill_id)
    items = list(LineItem.objects.filter(bill_id=bill_uuid).order_by('position', 'created_at'))
    claims = list(Claim.objects.filter(bill_id=bill_uuid).order_by('created_at'))
    return bill_uuid, items, claims


def get_remaining_quantities(*, bill_id: Any, view: Any = RemainingView.PAID) -> List[Dict[str, Any]]:
    """
    Remaining quantity of every line item on a bill.

    Args:
        bill_id: UUID of the bill
        view: 'paid' counts PAID claims only; 'live' also counts
            non-expired SELECTING claims

    Returns:
        One dict per item in display order: item_id, name, quantity,
        price_per_unit, claimed, remaining

    Raises:
        ValidationError: If view is unknown
        InvalidIdentifierError: If bill_id is not a UUID
        BillNotFoundError: If bill doesn't exist
    """
    view = parse_view(view)
    _, items, claims = _load(bill_id)
    counted = counted_claims(claims, view)

    return [
        {
            'item_id': item.id,
            'name': item.name,
            'quantity': item.quantity,
            'price_per_unit': item.price_per_unit,
            'claimed': claimed_quantity(item.id, counted),
            'remaining': remaining_quantity(item.quantity, counted, item.id),
        }
        for item in items
    ]


def get_bill_summary(*, bill_id: Any, view: Any = RemainingView.LIVE) -> Dict[str, Any]:
    """
    Aggregate a bill for the payer.

    Args:
        bill_id: UUID of the bill
        view: Which claims count, 'live' by default

    Returns:
        Dict with:
            - bill_id
            - view
            - total_amount: sum of item totals
            - claimed_amount: sum of counted claim totals (items + tip)
            - received_amount: same, restricted to claims marked received
            - outstanding_amount: claimed but not yet received, never negative
            - unclaimed_amount: item value nobody has claimed yet, never negative
            - tip_total
            - counts: {total, selecting, paid}
            - status_totals: {selecting, paid, tips}
            - claims: counted claims with items_amount and total attached

    Raises:
        ValidationError: If view is unknown
        InvalidIdentifierError: If bill_id is not a UUID
        BillNotFoundError: If bill doesn't exist
    """
    view = parse_view(view, default=RemainingView.LIVE)
    bill_uuid, items, claims = _load(bill_id)

    counted = annotate_claim_totals(counted_claims(claims, view, timezone.now()), items)

    total_amount = sum((item.total_price for item in items), ZERO)
    claimed_amount = sum((claim.total for claim in counted), ZERO)
    claimed_items = sum((claim.items_amount for claim in counted), ZERO)
    received_amount = sum((claim.total for claim in counted if claim.received), ZERO)
    tip_total = sum((claim_tip(claim) for claim in counted), ZERO)

    selecting = [claim for claim in counted if claim.status == ClaimStatus.SELECTING]
    paid = [claim for claim in counted if claim.status == ClaimStatus.PAID]

    return {
        'bill_id': bill_uuid,
        'view': view.value,
        'total_amount': total_amount,
        'claimed_amount': claimed_amount,
        'received_amount': received_amount,
        'outstanding_amount': max(ZERO, claimed_amount - received_amount),
        'unclaimed_amount': max(ZERO, total_amount - claimed_items),
        'tip_total': tip_total,
        'counts': {
            'total': len(counted),
            'selecting': len(selecting),
            'paid': len(paid),
        },
        'status_totals': {
            'selecting': sum((claim.total for claim in selecting), ZERO),
            'paid': sum((claim.total for claim in paid), ZERO),
            'tips': tip_total,
        },
        'claims': sorted(counted, key=lambda claim: claim.updated_at, reverse=True),
    }
