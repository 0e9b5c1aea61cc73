"""
Live bill view.

In-memory state of one bill (items, paid claims, live selections) kept
current by a BillSubscription, with remaining quantities recomputed by the
reconciler on demand.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from asgiref.sync import sync_to_async
from django.utils import timezone

from apps.claims.services import RemainingView, counted_claims, remaining_quantities
from apps.ledger.models import Claim, ClaimStatus, LineItem

from .bridge import BillSubscription, ConnectionStatus, SubscriptionHandlers, subscribe
from .events import ChangeEvent, claim_snapshot, line_item_snapshot

logger = logging.getLogger(__name__)

Loader = Callable[[str], Awaitable[List[Dict[str, Any]]]]


def load_item_rows(bill_id: str) -> List[Dict[str, Any]]:
    items = LineItem.objects.filter(bill_id=bill_id).order_by('position', 'created_at')
    return [line_item_snapshot(item) for item in items]


def load_paid_claim_rows(bill_id: str) -> List[Dict[str, Any]]:
    claims = Claim.objects.filter(bill_id=bill_id, status=ClaimStatus.PAID)
    return [claim_snapshot(claim) for claim in claims]


def load_live_claim_rows(bill_id: str) -> List[Dict[str, Any]]:
    claims = Claim.objects.filter(
        bill_id=bill_id,
        status=ClaimStatus.SELECTING,
        expires_at__gt=timezone.now()
    )
    return [claim_snapshot(claim) for claim in claims]


class LiveBillView:
    """
    Consumer of a bill's change feed.

    Paid and live claims are refetched separately, following the routing of
    the subscription: a selection that was just submitted only triggers a
    reload of paid claims, and is dropped from the live set by id.
    """

    def __init__(
        self,
        bill_id: Any,
        *,
        load_items: Optional[Loader] = None,
        load_paid_claims: Optional[Loader] = None,
        load_live_claims: Optional[Loader] = None,
    ):
        self.bill_id = str(bill_id)
        self.items: List[Dict[str, Any]] = []
        self.paid_claims: List[Dict[str, Any]] = []
        self.live_claims: List[Dict[str, Any]] = []
        self.status = ConnectionStatus.DISCONNECTED
        self.errors: List[Exception] = []
        self.subscription: Optional[BillSubscription] = None

        self._load_items = load_items or sync_to_async(load_item_rows)
        self._load_paid_claims = load_paid_claims or sync_to_async(load_paid_claim_rows)
        self._load_live_claims = load_live_claims or sync_to_async(load_live_claim_rows)

    def handlers(self) -> SubscriptionHandlers:
        return SubscriptionHandlers(
            on_selection_change=self._on_paid_change,
            on_active_selection_change=self._on_live_change,
            on_item_change=self._on_item_change,
            on_connection_status_change=self._on_status,
            on_error=self.errors.append,
            on_initial_fetch=self.refresh,
        )

    async def attach(self, client, **options) -> BillSubscription:
        """Subscribe to the bill on ``client``."""
        self.subscription = await subscribe(client, self.bill_id, self.handlers(), **options)
        return self.subscription

    async def detach(self) -> None:
        if self.subscription is not None:
            await self.subscription.close()
            self.subscription = None

    async def refresh(self) -> None:
        """Reload everything."""
        self.items = await self._load_items(self.bill_id)
        await self.refresh_paid_claims()
        await self.refresh_live_claims()

    async def refresh_paid_claims(self) -> None:
        self.paid_claims = await self._load_paid_claims(self.bill_id)
        paid_ids = {claim['id'] for claim in self.paid_claims}
        self.live_claims = [claim for claim in self.live_claims if claim['id'] not in paid_ids]

    async def refresh_live_claims(self) -> None:
        self.live_claims = await self._load_live_claims(self.bill_id)

    def remaining(self, view: RemainingView = RemainingView.PAID) -> Dict[str, Any]:
        """Remaining quantity per item id under ``view``."""
        claims = counted_claims(self.paid_claims + self.live_claims, view)
        return remaining_quantities(self.items, claims)

    async def _on_paid_change(self, event: ChangeEvent) -> None:
        await self.refresh_paid_claims()

    async def _on_live_change(self, event: ChangeEvent) -> None:
        await self.refresh_live_claims()

    async def _on_item_change(self, change: Dict[str, Any]) -> None:
        logger.debug("Item %s %s on bill %s", change['item_id'], change['action'], self.bill_id)
        self.items = await self._load_items(self.bill_id)

    def _on_status(self, status: ConnectionStatus) -> None:
        self.status = status
