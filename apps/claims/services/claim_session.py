"""
Claim session service.

Owns the lifecycle of one guest's claim on a bill: item quantity and tip
upserts into the single SELECTING claim of a (bill, session) pair, the
SELECTING -> PAID submission, the payer's received toggle and cleanup of
abandoned sessions.

Every operation validates its input before touching the store, in the order
required fields, identifier format, numeric range, then names.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, List, Optional
from uuid import UUID

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from apps.ledger.exceptions import (
    ClaimExpiredError,
    ClaimNotFoundError,
    EmptyClaimError,
    InvalidPaymentMethodError,
    InvalidQuantityError,
    InvalidStateError,
    InvalidTipError,
    LineItemNotFoundError,
)
from apps.ledger.models import Claim, ClaimStatus, LineItem, PaymentMethod
from apps.ledger.services import get_bill_id, store_write
from apps.ledger.validation import (
    is_missing,
    parse_decimal_in_range,
    parse_identifier,
    require_fields,
    sanitize_name,
)

from .reconciler import coerce_item_quantities

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')


def _json_number(value: Decimal):
    """Store whole quantities as ints and fractional ones as floats."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _get_claim_for_update(claim_uuid: UUID) -> Claim:
    try:
        return Claim.objects.select_for_update().get(id=claim_uuid)
    except Claim.DoesNotExist:
        raise ClaimNotFoundError(f"Claim with ID {claim_uuid} not found")


def _reset_expired(claim: Claim, now: datetime) -> None:
    """An expired selection is garbage; start over on the same row."""
    logger.info("Reusing expired claim %s for a new selection", claim.id)
    claim.item_quantities = {}
    claim.tip_amount = Decimal('0.00')
    claim.received = False
    claim.received_at = None
    claim.expires_at = now


def _upsert_selecting_claim(
    *,
    bill_uuid: UUID,
    session_uuid: UUID,
    guest_name: str,
    ttl: timedelta,
    mutate: Callable[[Claim], None],
    create: bool = True,
) -> Optional[Claim]:
    """
    Apply ``mutate`` to the SELECTING claim of a (bill, session) pair.

    Creates the claim when it is missing and ``create`` is set. An expired
    claim is only reset when ``create`` is set. The expiry is pushed out to
    now + ttl but never moved earlier.

    Returns:
        The saved claim, or None if there was no live claim and none was created
    """
    now = timezone.now()
    expires_at = now + ttl

    with store_write('save claim'):
        with transaction.atomic():
            claim = Claim.objects.select_for_update().filter(
                bill_id=bill_uuid,
                session_id=session_uuid,
                status=ClaimStatus.SELECTING
            ).first()

            if claim is None:
                if not create:
                    return None
                try:
                    with transaction.atomic():
                        claim = Claim(
                            bill_id=bill_uuid,
                            session_id=session_uuid,
                            guest_name=guest_name,
                            item_quantities={},
                            expires_at=expires_at,
                        )
                        mutate(claim)
                        claim.save()
                    logger.info("Created claim %s for bill %s", claim.id, bill_uuid)
                    return claim
                except IntegrityError:
                    # Another request created it first
                    logger.info(
                        "Concurrent claim creation for bill %s session %s, retrying as update",
                        bill_uuid, session_uuid
                    )
                    claim = Claim.objects.select_for_update().get(
                        bill_id=bill_uuid,
                        session_id=session_uuid,
                        status=ClaimStatus.SELECTING
                    )

            if claim.is_expired(now):
                if not create:
                    return None
                _reset_expired(claim, now)

            claim.guest_name = guest_name
            mutate(claim)
            claim.expires_at = max(claim.expires_at, expires_at)
            claim.save(update_fields=[
                'guest_name',
                'item_quantities',
                'tip_amount',
                'received',
                'received_at',
                'expires_at',
                'updated_at',
            ])
    return claim


def upsert_item_quantity(
    *,
    bill_id: Any,
    item_id: Any,
    session_id: Any,
    guest_name: Any,
    quantity: Any
) -> Optional[Claim]:
    """
    Set how much of one line item a guest is claiming.

    Upserts into the guest's SELECTING claim for the bill and refreshes its
    short presence expiry. A quantity of 0 removes the item's entry; when the
    guest has no live claim that is a successful no-op.

    Args:
        bill_id: UUID of the bill
        item_id: UUID of the line item
        session_id: Per-browser session UUID
        guest_name: Guest display name
        quantity: Claimed quantity in [0, MAX_CLAIM_QUANTITY]

    Returns:
        The updated claim, or None if nothing needed to be stored

    Raises:
        MissingFieldError: If a field is absent
        InvalidIdentifierError: If an id is not a UUID
        InvalidQuantityError: If quantity is out of range or exceeds the item's quantity
        InvalidNameError: If the name is empty after sanitizing
        BillNotFoundError: If bill doesn't exist
        LineItemNotFoundError: If the item is not on the bill
        StoreError: If the claim cannot be written
    """
    require_fields(
        bill_id=bill_id,
        item_id=item_id,
        session_id=session_id,
        guest_name=guest_name,
        quantity=quantity
    )
    bill_uuid = parse_identifier(bill_id, 'bill_id')
    item_uuid = parse_identifier(item_id, 'item_id')
    session_uuid = parse_identifier(session_id, 'session_id')
    amount = parse_decimal_in_range(
        quantity, 0, settings.MAX_CLAIM_QUANTITY, InvalidQuantityError, 'quantity'
    ).quantize(CENTS)
    name = sanitize_name(guest_name, settings.GUEST_NAME_MAX_LENGTH)

    get_bill_id(bill_uuid)
    if amount > 0:
        try:
            item = LineItem.objects.get(id=item_uuid, bill_id=bill_uuid)
        except LineItem.DoesNotExist:
            raise LineItemNotFoundError(f"Line item with ID {item_uuid} not found on this bill")
        if amount > item.quantity:
            raise InvalidQuantityError(f"Only {item.quantity} of {item.name} on this bill")

    key = str(item_uuid)

    def set_quantity(claim: Claim) -> None:
        quantities = claim.item_quantities if isinstance(claim.item_quantities, dict) else {}
        quantities = dict(quantities)
        if amount == 0:
            quantities.pop(key, None)
        else:
            quantities[key] = _json_number(amount)
        claim.item_quantities = quantities

    return _upsert_selecting_claim(
        bill_uuid=bill_uuid,
        session_uuid=session_uuid,
        guest_name=name,
        ttl=settings.CLAIM_PRESENCE_TTL,
        mutate=set_quantity,
        create=amount > 0,
    )


def upsert_tip(*, bill_id: Any, session_id: Any, guest_name: Any, tip_amount: Any) -> Claim:
    """
    Set the tip on a guest's SELECTING claim, creating the claim if needed.

    Tip writes extend the claim's expiry to the long tip window.

    Raises:
        MissingFieldError: If a field is absent
        InvalidIdentifierError: If an id is not a UUID
        InvalidTipError: If tip_amount is out of range
        InvalidNameError: If the name is empty after sanitizing
        BillNotFoundError: If bill doesn't exist
        StoreError: If the claim cannot be written
    """
    require_fields(bill_id=bill_id, session_id=session_id, guest_name=guest_name, tip_amount=tip_amount)
    bill_uuid = parse_identifier(bill_id, 'bill_id')
    session_uuid = parse_identifier(session_id, 'session_id')
    tip = parse_decimal_in_range(
        tip_amount, 0, settings.MAX_TIP_AMOUNT, InvalidTipError, 'tip_amount'
    ).quantize(CENTS)
    name = sanitize_name(guest_name, settings.GUEST_NAME_MAX_LENGTH)

    get_bill_id(bill_uuid)

    def set_tip(claim: Claim) -> None:
        claim.tip_amount = tip

    return _upsert_selecting_claim(
        bill_uuid=bill_uuid,
        session_uuid=session_uuid,
        guest_name=name,
        ttl=settings.CLAIM_TIP_TTL,
        mutate=set_tip,
    )


def submit_claim(*, claim_id: Any, payment_method: Any, session_id: Any = None) -> Claim:
    """
    Submit a claim: SELECTING -> PAID.

    Item quantities and tip are frozen from here on. Submitting a claim that
    is already PAID returns it unchanged.

    Args:
        claim_id: UUID of the claim
        payment_method: 'PAYPAL' or 'CASH'
        session_id: Optional session UUID; when given it must own the claim

    Raises:
        MissingFieldError: If claim_id or payment_method is absent
        InvalidIdentifierError: If an id is not a UUID
        InvalidPaymentMethodError: If payment_method is unknown
        ClaimNotFoundError: If claim doesn't exist (or belongs to another session)
        ClaimExpiredError: If the selection expired before submission
        EmptyClaimError: If the claim has no items
    """
    require_fields(claim_id=claim_id, payment_method=payment_method)
    claim_uuid = parse_identifier(claim_id, 'claim_id')
    session_uuid = None if is_missing(session_id) else parse_identifier(session_id, 'session_id')

    method = payment_method.strip().upper() if isinstance(payment_method, str) else None
    if method not in PaymentMethod.values:
        raise InvalidPaymentMethodError(
            f"payment_method must be one of {', '.join(PaymentMethod.values)}"
        )

    with store_write('submit claim'):
        with transaction.atomic():
            claim = _get_claim_for_update(claim_uuid)
            if session_uuid is not None and claim.session_id != session_uuid:
                raise ClaimNotFoundError(f"Claim with ID {claim_uuid} not found")

            if claim.status == ClaimStatus.PAID:
                logger.info("Claim %s already submitted", claim.id)
                return claim

            if claim.is_expired():
                raise ClaimExpiredError("This selection has expired, please pick your items again")
            if not coerce_item_quantities(claim.item_quantities):
                raise EmptyClaimError("Select at least one item before submitting")

            claim.status = ClaimStatus.PAID
            claim.payment_method = method
            claim.submitted_at = timezone.now()
            claim.save(update_fields=['status', 'payment_method', 'submitted_at', 'updated_at'])

    logger.info("Claim %s submitted with %s", claim.id, method)
    return claim


def _set_received(claim_id: Any, received: bool) -> Claim:
    require_fields(claim_id=claim_id)
    claim_uuid = parse_identifier(claim_id, 'claim_id')

    with store_write('update received flag'):
        with transaction.atomic():
            claim = _get_claim_for_update(claim_uuid)

            allowed = list(settings.CLAIM_CONFIRMABLE_STATUSES)
            if claim.status not in allowed:
                raise InvalidStateError(
                    f"Receipt can only be confirmed for {', '.join(allowed)} claims"
                )

            if claim.received != received:
                claim.received = received
                claim.received_at = timezone.now() if received else None
                claim.save(update_fields=['received', 'received_at', 'updated_at'])
    return claim


def confirm_received(*, claim_id: Any) -> Claim:
    """
    Payer marks a claim's money as received.

    Idempotent. Independent of the claim's status field.

    Raises:
        ClaimNotFoundError: If claim doesn't exist
        InvalidStateError: If the claim's status is not confirmable
    """
    return _set_received(claim_id, True)


def unconfirm_received(*, claim_id: Any) -> Claim:
    """Payer clears a claim's received flag. Idempotent."""
    return _set_received(claim_id, False)


def cleanup_session(*, bill_id: Any, session_id: Any) -> int:
    """
    Delete the SELECTING claim of a (bill, session) pair.

    Best-effort: store failures are logged and reported as nothing deleted.

    Returns:
        Number of claims deleted
    """
    require_fields(bill_id=bill_id, session_id=session_id)
    bill_uuid = parse_identifier(bill_id, 'bill_id')
    session_uuid = parse_identifier(session_id, 'session_id')

    try:
        deleted, _ = Claim.objects.filter(
            bill_id=bill_uuid,
            session_id=session_uuid,
            status=ClaimStatus.SELECTING
        ).delete()
    except DatabaseError as exc:
        logger.warning("Cleanup of session %s on bill %s failed: %s", session_uuid, bill_uuid, exc)
        return 0

    if deleted:
        logger.info("Cleaned up %d claim(s) for session %s on bill %s", deleted, session_uuid, bill_uuid)
    return deleted


def list_session_claims(*, bill_id: Any, session_id: Any) -> List[Claim]:
    """
    Get a guest's claims on a bill: the live SELECTING claim plus PAID history.

    Raises:
        InvalidIdentifierError: If an id is not a UUID
        BillNotFoundError: If bill doesn't exist
    """
    require_fields(bill_id=bill_id, session_id=session_id)
    bill_uuid = parse_identifier(bill_id, 'bill_id')
    session_uuid = parse_identifier(session_id, 'session_id')
    get_bill_id(bill_uuid)

    now = timezone.now()
    claims = Claim.objects.filter(bill_id=bill_uuid, session_id=session_uuid).order_by('created_at')
    return [
        claim for claim in claims
        if claim.status == ClaimStatus.PAID or not claim.is_expired(now)
    ]


def list_live_claims(*, bill_id: Any) -> List[Claim]:
    """
    Get the non-expired SELECTING claims on a bill, most recently updated first.

    Store failures degrade to an empty list.
    """
    bill_uuid = parse_identifier(bill_id, 'bill_id')
    try:
        return list(
            Claim.objects.filter(
                bill_id=bill_uuid,
                status=ClaimStatus.SELECTING,
                expires_at__gt=timezone.now()
            ).order_by('-updated_at')
        )
    except DatabaseError as exc:
        logger.warning("Could not load live claims for bill %s: %s", bill_uuid, exc)
        return []


def purge_expired_claims(*, now: Optional[datetime] = None, dry_run: bool = False) -> int:
    """
    Delete SELECTING claims whose expiry has passed.

    Args:
        now: Cutoff, defaults to the current time
        dry_run: Only count, don't delete

    Returns:
        Number of expired claims (deleted unless dry_run)
    """
    queryset = Claim.objects.filter(
        status=ClaimStatus.SELECTING,
        expires_at__lte=now or timezone.now()
    )
    if dry_run:
        return queryset.count()

    with store_write('purge expired claims'):
        deleted, _ = queryset.delete()
    logger.info("Purged %d expired claim(s)", deleted)
    return deleted
