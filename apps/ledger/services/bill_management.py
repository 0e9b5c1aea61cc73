"""
Bill management service.

Handles bill intake, payer edits and applying the output of the receipt
extraction collaborator.
"""

import logging
import re
from typing import Any, Dict
from uuid import UUID

from django.db import transaction

from apps.ledger.exceptions import (
    BillNotFoundError,
    InvalidPaymentHandleError,
    InvalidPriceError,
    MissingFieldError,
    ValidationError,
)
from apps.ledger.models import Bill, LineItem
from apps.ledger.validation import (
    is_missing,
    parse_decimal,
    parse_identifier,
    require_fields,
    sanitize_name,
)

from .line_item_management import normalize_line_item
from .store import store_write

logger = logging.getLogger(__name__)

PAYMENT_HANDLE_PATTERN = re.compile(r'^[A-Za-z0-9_-]{1,50}$')


def create_bill(*, payer_name: str, payment_handle: str) -> Bill:
    """
    Create a bill for a payer.

    The bill gets a fresh share token; image and items are attached later by
    the upload and extraction steps.

    Args:
        payer_name: Payer display name (sanitized, max 100 chars)
        payment_handle: Payment account handle (letters, digits, _ and -)

    Returns:
        Created Bill instance

    Raises:
        MissingFieldError: If either field is absent
        InvalidPaymentHandleError: If the handle has the wrong shape
        InvalidNameError: If the name is empty after sanitizing
        StoreError: If the bill cannot be written
    """
    require_fields(payer_name=payer_name, payment_handle=payment_handle)

    handle = payment_handle.strip() if isinstance(payment_handle, str) else ''
    if not PAYMENT_HANDLE_PATTERN.match(handle):
        raise InvalidPaymentHandleError("Invalid payment handle")

    name = sanitize_name(payer_name, 100)

    with store_write('create bill'):
        bill = Bill.objects.create(payer_name=name, payment_handle=handle)

    logger.info("Created bill %s", bill.id)
    return bill


def get_bill(*, bill_id: Any) -> Bill:
    """
    Get a bill by its internal id.

    Raises:
        InvalidIdentifierError: If bill_id is not a UUID
        BillNotFoundError: If bill doesn't exist
    """
    bill_uuid = parse_identifier(bill_id, 'bill_id')
    try:
        return Bill.objects.get(id=bill_uuid)
    except Bill.DoesNotExist:
        raise BillNotFoundError(f"Bill with ID {bill_uuid} not found")


def get_bill_by_share_token(*, share_token: Any) -> Bill:
    """
    Get a bill by its public share token.

    Raises:
        InvalidIdentifierError: If share_token is not a UUID
        BillNotFoundError: If no bill has this token
    """
    token = parse_identifier(share_token, 'share_token')
    try:
        return Bill.objects.get(share_token=token)
    except Bill.DoesNotExist:
        raise BillNotFoundError("Bill not found for this share link")


def update_payer_name(*, bill_id: Any, payer_name: str) -> Bill:
    """
    Rename the payer of a bill.

    Raises:
        MissingFieldError: If payer_name is absent
        InvalidIdentifierError: If bill_id is not a UUID
        InvalidNameError: If the name is empty after sanitizing
        BillNotFoundError: If bill doesn't exist
    """
    require_fields(bill_id=bill_id, payer_name=payer_name)
    parse_identifier(bill_id, 'bill_id')
    name = sanitize_name(payer_name, 100)

    bill = get_bill(bill_id=bill_id)
    bill.payer_name = name
    with store_write('update payer name'):
        bill.save(update_fields=['payer_name', 'updated_at'])
    return bill


def apply_extraction(*, bill_id: Any, extraction: Dict[str, Any]) -> Bill:
    """
    Apply a receipt extraction result to a bill.

    Updates the bill's restaurant name, total and image reference and replaces
    its line items with the extracted ones. All of it happens in a single
    transaction so a bill never references a partially written item set.

    Args:
        bill_id: UUID of the bill
        extraction: ``{restaurant_name?, total_amount?, image_url?,
            items: [{name, quantity, price_per_unit}, ...]}``

    Returns:
        Updated Bill instance

    Raises:
        InvalidIdentifierError: If bill_id is not a UUID
        ValidationError: If the payload or any extracted item is invalid
        BillNotFoundError: If bill doesn't exist
        StoreError: If the write fails (nothing is applied)
    """
    bill_uuid = parse_identifier(bill_id, 'bill_id')

    if not isinstance(extraction, dict):
        raise ValidationError("Extraction result must be an object")
    raw_items = extraction.get('items')
    if not isinstance(raw_items, list) or not raw_items:
        raise MissingFieldError("Extraction result contains no items")

    # Validate everything before touching the store
    items = [normalize_line_item(raw, index) for index, raw in enumerate(raw_items)]

    total_amount = None
    if not is_missing(extraction.get('total_amount')):
        total_amount = parse_decimal(extraction['total_amount'], InvalidPriceError, 'total_amount')
        if total_amount < 0:
            raise InvalidPriceError("total_amount must be zero or greater")

    restaurant_name = extraction.get('restaurant_name')
    if restaurant_name is not None:
        restaurant_name = str(restaurant_name).strip()[:200] or None

    with store_write('apply extraction'):
        with transaction.atomic():
            try:
                bill = Bill.objects.select_for_update().get(id=bill_uuid)
            except Bill.DoesNotExist:
                raise BillNotFoundError(f"Bill with ID {bill_uuid} not found")

            bill.restaurant_name = restaurant_name
            bill.total_amount = total_amount
            update_fields = ['restaurant_name', 'total_amount', 'updated_at']
            if extraction.get('image_url'):
                bill.image_url = str(extraction['image_url'])[:500]
                update_fields.append('image_url')
            bill.save(update_fields=update_fields)

            bill.items.all().delete()
            for position, (name, quantity, price) in enumerate(items):
                LineItem.objects.create(
                    bill=bill,
                    name=name,
                    quantity=quantity,
                    price_per_unit=price,
                    position=position,
                )

    logger.info("Applied extraction to bill %s (%d items)", bill.id, len(items))
    return bill


def get_bill_id(bill_id: Any) -> UUID:
    """Validate a bill id and confirm the bill exists."""
    bill_uuid = parse_identifier(bill_id, 'bill_id')
    if not Bill.objects.filter(id=bill_uuid).exists():
        raise BillNotFoundError(f"Bill with ID {bill_uuid} not found")
    return bill_uuid
