"""
Ledger app services layer.

Services contain business logic and orchestrate operations across models.
All state-changing operations use transactions.
"""

from .bill_management import (
    create_bill,
    get_bill,
    get_bill_id,
    get_bill_by_share_token,
    update_payer_name,
    apply_extraction,
)

from .line_item_management import (
    list_line_items,
    add_line_item,
    update_line_item,
    delete_line_item,
    is_item_claimed,
)

from .store import store_write


__all__ = [
    # Bill Management
    'create_bill',
    'get_bill',
    'get_bill_id',
    'get_bill_by_share_token',
    'update_payer_name',
    'apply_extraction',

    # Line Item Management
    'list_line_items',
    'add_line_item',
    'update_line_item',
    'delete_line_item',
    'is_item_claimed',

    # Persistence
    'store_write',
]
