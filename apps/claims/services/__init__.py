"""
Claims app services layer.

Services contain business logic and orchestrate operations across models.
The reconciler is pure; claim session and payer console services go
through the ledger models.
"""

from .reconciler import (
    RemainingView,
    coerce_item_quantities,
    claimed_quantity,
    remaining_quantity,
    remaining_quantities,
    counted_claims,
    item_prices,
    claim_total,
)

from .claim_session import (
    upsert_item_quantity,
    upsert_tip,
    submit_claim,
    confirm_received,
    unconfirm_received,
    cleanup_session,
    list_session_claims,
    list_live_claims,
    purge_expired_claims,
)

from .payer_console import (
    parse_view,
    annotate_claim_totals,
    get_remaining_quantities,
    get_bill_summary,
)


__all__ = [
    # Reconciler
    'RemainingView',
    'coerce_item_quantities',
    'claimed_quantity',
    'remaining_quantity',
    'remaining_quantities',
    'counted_claims',
    'item_prices',
    'claim_total',

    # Claim Session
    'upsert_item_quantity',
    'upsert_tip',
    'submit_claim',
    'confirm_received',
    'unconfirm_received',
    'cleanup_session',
    'list_session_claims',
    'list_live_claims',
    'purge_expired_claims',

    # Payer Console
    'parse_view',
    'annotate_claim_totals',
    'get_remaining_quantities',
    'get_bill_summary',
]
