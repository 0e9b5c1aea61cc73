"""
Quantity reconciler.

Pure functions that fold a set of claims into per-item remaining quantities
and per-claim totals. Nothing in here touches the database and nothing in
here raises for malformed claim data: a missing, null or garbled quantity
mapping counts as "no claim".

Claims and items may be model instances or plain mappings (for example row
snapshots delivered by the change feed).
"""

from datetime import datetime, timezone as dt_timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from django.utils import timezone

from apps.ledger.models import ClaimStatus

ZERO = Decimal('0')
CENTS = Decimal('0.01')


class RemainingView(str, Enum):
    """Which claims count against an item's quantity."""
    PAID = 'paid'   # PAID only (claim form)
    LIVE = 'live'   # PAID + non-expired SELECTING (live/debug views)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def _to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
        if timezone.is_naive(parsed):
            parsed = parsed.replace(tzinfo=dt_timezone.utc)
        return parsed
    return None


def coerce_item_quantities(raw: Any) -> Dict[str, Decimal]:
    """
    Turn a stored quantity mapping into ``{item id: Decimal}``.

    Non-mapping input yields an empty dict. Entries that are not finite,
    positive numbers are dropped.
    """
    if not isinstance(raw, Mapping):
        return {}

    quantities = {}
    for item_id, value in raw.items():
        number = _to_decimal(value)
        if number is None or number <= 0:
            continue
        quantities[str(item_id)] = number
    return quantities


def claimed_quantity(item_id: Any, claims: Iterable[Any]) -> Decimal:
    """Sum the quantity of one item across the given claims."""
    key = str(item_id)
    total = ZERO
    for claim in claims:
        total += coerce_item_quantities(_field(claim, 'item_quantities')).get(key, ZERO)
    return total


def remaining_quantity(quantity: Any, claims: Iterable[Any], item_id: Any) -> Decimal:
    """
    Remaining quantity of one item: ``max(0, quantity - claimed)``.

    Over-claiming is clamped to zero rather than reported as negative.
    """
    nominal = _to_decimal(quantity) or ZERO
    return max(ZERO, nominal - claimed_quantity(item_id, claims))


def is_counted(claim: Any, view: RemainingView, now: Optional[datetime] = None) -> bool:
    status = _field(claim, 'status')
    if status == ClaimStatus.PAID:
        return True
    if view != RemainingView.LIVE or status != ClaimStatus.SELECTING:
        return False
    expires_at = _to_datetime(_field(claim, 'expires_at'))
    return expires_at is not None and expires_at > (now or timezone.now())


def counted_claims(claims: Iterable[Any], view: RemainingView = RemainingView.PAID,
                   now: Optional[datetime] = None) -> List[Any]:
    """Filter claims down to the ones that count under ``view``."""
    view = RemainingView(view)
    now = now or timezone.now()
    return [claim for claim in claims if is_counted(claim, view, now)]


def remaining_quantities(items: Iterable[Any], claims: Iterable[Any]) -> Dict[str, Decimal]:
    """
    Remaining quantity for every item, keyed by item id.

    Only the given items appear in the result, so claim entries for deleted
    items are ignored.
    """
    claims = list(claims)
    return {
        str(_field(item, 'id')): remaining_quantity(_field(item, 'quantity'), claims, _field(item, 'id'))
        for item in items
    }


def item_prices(items: Iterable[Any]) -> Dict[str, Decimal]:
    """Map item id to unit price, skipping items without a usable price."""
    prices = {}
    for item in items:
        price = _to_decimal(_field(item, 'price_per_unit'))
        if price is not None:
            prices[str(_field(item, 'id'))] = price
    return prices


def claim_items_amount(claim: Any, prices: Mapping[str, Decimal]) -> Decimal:
    """Sum of claimed quantity times unit price, ignoring unknown items."""
    amount = ZERO
    for item_id, quantity in coerce_item_quantities(_field(claim, 'item_quantities')).items():
        price = prices.get(item_id)
        if price is not None:
            amount += quantity * price
    return amount.quantize(CENTS)


def claim_tip(claim: Any) -> Decimal:
    tip = _to_decimal(_field(claim, 'tip_amount'))
    if tip is None or tip < 0:
        return ZERO.quantize(CENTS)
    return tip.quantize(CENTS)


def claim_total(claim: Any, prices: Mapping[str, Decimal]) -> Decimal:
    """Total owed by one claim: items amount plus tip."""
    return claim_items_amount(claim, prices) + claim_tip(claim)
