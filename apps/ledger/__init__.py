"""
Ledger App - Bills, Line Items and Claims

This app owns the durable records every other part of the service reads and
writes through: the payer's bill, the line items extracted from the receipt,
and the guests' claims against those items.

Key Features:
- Bill intake with a public share token distinct from the internal id
- Transactional application of receipt extraction results
- Payer-side line item editing (permissive or strict policy)
- Domain exception hierarchy shared by all apps

Architecture:
- Models: Bill, LineItem, Claim
- Services: bill_management, line_item_management
- Views: BillViewSet, LineItemViewSet, shared_bill
- Exceptions: SplitServiceError hierarchy
"""

__version__ = '0.3.0'
