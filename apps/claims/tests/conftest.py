import pytest
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4
from django.utils import timezone
from rest_framework.test import APIClient
from apps.ledger.models import Bill, LineItem, Claim, ClaimStatus, PaymentMethod


@pytest.fixture
def api_client():
    """Return an API client (the service has no authentication)."""
    return APIClient()


@pytest.fixture
def bill(db):
    """Create and return a bill."""
    return Bill.objects.create(payer_name='Alice', payment_handle='alice')


@pytest.fixture
def pasta(bill):
    """Line item: 4 x Pasta @ 10.00."""
    return LineItem.objects.create(
        bill=bill,
        name='Pasta',
        quantity=Decimal('4'),
        price_per_unit=Decimal('10.00'),
        position=0,
    )


@pytest.fixture
def beer(bill):
    """Line item: 2 x Beer @ 5.00."""
    return LineItem.objects.create(
        bill=bill,
        name='Beer',
        quantity=Decimal('2'),
        price_per_unit=Decimal('5.00'),
        position=1,
    )


@pytest.fixture
def session_id():
    return str(uuid4())


@pytest.fixture
def make_claim(bill):
    """Factory for claims on the bill."""
    def _make(quantities, status=ClaimStatus.SELECTING, tip='0.00', expires_in=timedelta(minutes=30),
              received=False, guest_name='Guest', session=None):
        return Claim.objects.create(
            bill=bill,
            guest_name=guest_name,
            session_id=session or uuid4(),
            item_quantities={str(item_id): qty for item_id, qty in quantities.items()},
            tip_amount=Decimal(tip),
            status=status,
            payment_method=PaymentMethod.CASH if status == ClaimStatus.PAID else None,
            received=received,
            expires_at=timezone.now() + expires_in,
        )
    return _make
