"""
Line item management service.

Payer-side add/edit/delete of bill line items. Whether items that guests have
already claimed may still be changed is decided by LINE_ITEM_EDIT_POLICY.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Tuple

from django.conf import settings
from django.db import transaction
from django.db.models import Max, QuerySet

from apps.ledger.exceptions import (
    ConflictError,
    InvalidNameError,
    InvalidPriceError,
    InvalidQuantityError,
    LineItemNotFoundError,
    ValidationError,
)
from apps.ledger.models import Bill, Claim, LineItem, QUANTITY_STEP
from apps.ledger.validation import (
    parse_decimal,
    parse_identifier,
    require_fields,
)

from .store import store_write

logger = logging.getLogger(__name__)

MAX_ITEM_QUANTITY = Decimal('9999')
STRICT_POLICY = 'strict'


def normalize_line_item(raw: Dict[str, Any], index: int = 0) -> Tuple[str, Decimal, Decimal]:
    """
    Validate one line item payload.

    Args:
        raw: ``{name, quantity, price_per_unit}``
        index: Position in the payload, used in error messages

    Returns:
        Tuple of (name, quantity, price_per_unit)

    Raises:
        ValidationError: If any field is missing or out of range
    """
    if not isinstance(raw, dict):
        raise ValidationError(f"Item {index} must be an object")

    require_fields(
        name=raw.get('name'),
        quantity=raw.get('quantity'),
        price_per_unit=raw.get('price_per_unit'),
    )

    name = raw['name'].strip()[:200] if isinstance(raw['name'], str) else ''
    if not name:
        raise InvalidNameError(f"Item {index} needs a name")

    quantity = parse_decimal(raw['quantity'], InvalidQuantityError, 'quantity')
    if quantity <= 0 or quantity > MAX_ITEM_QUANTITY:
        raise InvalidQuantityError(f"Quantity of {name} must be greater than 0")
    if quantity % QUANTITY_STEP != 0:
        raise InvalidQuantityError(f"Quantity of {name} must be a multiple of {QUANTITY_STEP}")

    price = parse_decimal(raw['price_per_unit'], InvalidPriceError, 'price_per_unit')
    if price < 0:
        raise InvalidPriceError(f"Price of {name} must be zero or greater")

    return name, quantity, price.quantize(Decimal('0.01'))


def is_item_claimed(item: LineItem) -> bool:
    """Return True if any claim on the bill references this item."""
    return Claim.objects.filter(
        bill_id=item.bill_id,
        item_quantities__has_key=str(item.id)
    ).exists()


def _check_edit_policy(item: LineItem) -> None:
    if getattr(settings, 'LINE_ITEM_EDIT_POLICY', 'permissive') != STRICT_POLICY:
        return
    if is_item_claimed(item):
        raise ConflictError(f"{item.name} has already been claimed by a guest")


def _get_item_for_update(item_id: Any) -> LineItem:
    item_uuid = parse_identifier(item_id, 'item_id')
    try:
        return LineItem.objects.select_for_update().get(id=item_uuid)
    except LineItem.DoesNotExist:
        raise LineItemNotFoundError(f"Line item with ID {item_uuid} not found")


def list_line_items(*, bill_id: Any) -> QuerySet[LineItem]:
    """
    Get a bill's line items in display order.

    Raises:
        InvalidIdentifierError: If bill_id is not a UUID
    """
    bill_uuid = parse_identifier(bill_id, 'bill_id')
    return LineItem.objects.filter(bill_id=bill_uuid).order_by('position', 'created_at')


@transaction.atomic
def add_line_item(*, bill_id: Any, name: Any, quantity: Any, price_per_unit: Any) -> LineItem:
    """
    Append a line item to a bill.

    Raises:
        ValidationError: If the item payload is invalid
        BillNotFoundError: If bill doesn't exist
    """
    from .bill_management import get_bill

    require_fields(bill_id=bill_id, name=name, quantity=quantity, price_per_unit=price_per_unit)
    bill_uuid = parse_identifier(bill_id, 'bill_id')
    item_name, item_quantity, price = normalize_line_item(
        {'name': name, 'quantity': quantity, 'price_per_unit': price_per_unit}
    )
    bill: Bill = get_bill(bill_id=bill_uuid)

    last_position = bill.items.aggregate(last=Max('position'))['last']
    with store_write('add line item'):
        item = LineItem.objects.create(
            bill=bill,
            name=item_name,
            quantity=item_quantity,
            price_per_unit=price,
            position=0 if last_position is None else last_position + 1,
        )
    return item


@transaction.atomic
def update_line_item(*, item_id: Any, name: Any, quantity: Any, price_per_unit: Any) -> LineItem:
    """
    Edit a line item's name, quantity and unit price.

    Under the permissive policy claims referencing the item keep their
    quantities and are re-priced on the next read.

    Raises:
        ValidationError: If the item payload is invalid
        LineItemNotFoundError: If item doesn't exist
        ConflictError: If the item is claimed and the policy is strict
    """
    require_fields(item_id=item_id, name=name, quantity=quantity, price_per_unit=price_per_unit)
    parse_identifier(item_id, 'item_id')
    item_name, item_quantity, price = normalize_line_item(
        {'name': name, 'quantity': quantity, 'price_per_unit': price_per_unit}
    )
    item = _get_item_for_update(item_id)
    _check_edit_policy(item)

    item.name = item_name
    item.quantity = item_quantity
    item.price_per_unit = price
    with store_write('update line item'):
        item.save(update_fields=['name', 'quantity', 'price_per_unit', 'updated_at'])
    return item


@transaction.atomic
def delete_line_item(*, item_id: Any) -> None:
    """
    Delete a line item.

    Claims that referenced it keep the orphaned id, which then contributes
    nothing to reconciliation or totals.

    Raises:
        LineItemNotFoundError: If item doesn't exist
        ConflictError: If the item is claimed and the policy is strict
    """
    item = _get_item_for_update(item_id)
    _check_edit_policy(item)

    with store_write('delete line item'):
        item.delete()
    logger.info("Deleted line item %s from bill %s", item_id, item.bill_id)
