import pytest
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4
from django.utils import timezone
from rest_framework.test import APIClient
from apps.ledger.models import Bill, LineItem, Claim, ClaimStatus


@pytest.fixture
def api_client():
    """Return an API client (the service has no authentication)."""
    return APIClient()


@pytest.fixture
def bill(db):
    """Create and return a bill without items."""
    return Bill.objects.create(
        payer_name='Alice',
        payment_handle='alice_pays',
        restaurant_name='Trattoria',
    )


@pytest.fixture
def pizza(bill):
    """Line item: 2 x Pizza @ 12.50."""
    return LineItem.objects.create(
        bill=bill,
        name='Pizza',
        quantity=Decimal('2'),
        price_per_unit=Decimal('12.50'),
        position=0,
    )


@pytest.fixture
def wine(bill):
    """Line item: 1 x Wine @ 30.00."""
    return LineItem.objects.create(
        bill=bill,
        name='Wine',
        quantity=Decimal('1'),
        price_per_unit=Decimal('30.00'),
        position=1,
    )


@pytest.fixture
def claim_on_pizza(bill, pizza):
    """A guest's SELECTING claim for one pizza."""
    return Claim.objects.create(
        bill=bill,
        guest_name='Bob',
        session_id=uuid4(),
        item_quantities={str(pizza.id): 1},
        status=ClaimStatus.SELECTING,
        expires_at=timezone.now() + timedelta(minutes=30),
    )


@pytest.fixture
def extraction():
    """Receipt extraction payload as produced by the vision step."""
    return {
        'restaurant_name': 'Sushi Bar',
        'total_amount': '47.00',
        'image_url': 'receipts/abc.jpg',
        'items': [
            {'name': 'Maki', 'quantity': 3, 'price_per_unit': '6.00'},
            {'name': 'Edamame', 'quantity': 0.5, 'price_per_unit': '8.00'},
            {'name': 'Tea', 'quantity': 2, 'price_per_unit': '12.50'},
        ],
    }
