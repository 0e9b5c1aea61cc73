from django.db import models
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.utils import timezone
from decimal import Decimal
import uuid


QUANTITY_STEP = Decimal('0.25')


def validate_quantity_step(value):
    """Line item quantities come in steps of 0.25."""
    if value is not None and value % QUANTITY_STEP != 0:
        raise ValidationError(f'{value} is not a multiple of {QUANTITY_STEP}')


class ClaimStatus(models.TextChoices):
    SELECTING = 'SELECTING', 'Selecting'
    PAID = 'PAID', 'Paid'


class PaymentMethod(models.TextChoices):
    PAYPAL = 'PAYPAL', 'PayPal'
    CASH = 'CASH', 'Cash'


class Bill(models.Model):
    """One uploaded receipt, owned by the payer."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    payer_name = models.CharField(max_length=100)
    payment_handle = models.CharField(max_length=50)

    # Set by the upload/extraction collaborators
    image_url = models.CharField(max_length=500, blank=True)
    restaurant_name = models.CharField(max_length=200, null=True, blank=True)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    # Public link token, never equal to the internal id
    share_token = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'bills'
        indexes = [
            models.Index(fields=['share_token'], name='bills_share_t_4c1f2e_idx'),
            models.Index(fields=['created_at'], name='bills_created_9a0d17_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        place = self.restaurant_name or 'Unknown restaurant'
        return f"{place} - paid by {self.payer_name}"

    def save(self, *args, **kwargs):
        """Keep the share token distinct from the internal id."""
        while self.share_token == self.id:
            self.share_token = uuid.uuid4()
        super().save(*args, **kwargs)


class LineItem(models.Model):
    """One priced, quantity-bearing entry extracted from a bill."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    bill = models.ForeignKey(
        Bill,
        on_delete=models.CASCADE,
        related_name='items'
    )

    name = models.CharField(max_length=200)
    quantity = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(QUANTITY_STEP), validate_quantity_step]
    )
    price_per_unit = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    total_price = models.DecimalField(max_digits=12, decimal_places=2, editable=False)
    position = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'line_items'
        indexes = [
            models.Index(fields=['bill', 'position'], name='line_items_bill_id_5e7b3a_idx'),
        ]
        ordering = ['position', 'created_at']

    def __str__(self):
        return f"{self.quantity} x {self.name} @ {self.price_per_unit}"

    def save(self, *args, **kwargs):
        """Derive total price from quantity and unit price."""
        self.total_price = (Decimal(self.quantity) * Decimal(self.price_per_unit)).quantize(Decimal('0.01'))
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'total_price' not in update_fields:
            kwargs['update_fields'] = list(update_fields) + ['total_price']
        super().save(*args, **kwargs)


class Claim(models.Model):
    """
    One guest's declared quantities per line item plus tip.

    SELECTING claims are mutable and expire; PAID claims are frozen.
    The ``received`` flag is toggled by the payer independently of status.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    bill = models.ForeignKey(
        Bill,
        on_delete=models.CASCADE,
        related_name='claims'
    )

    guest_name = models.CharField(max_length=100)
    session_id = models.UUIDField(db_index=True)

    # {line item id: claimed quantity}; entries with quantity 0 are removed
    item_quantities = models.JSONField(default=dict, blank=True)
    tip_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    status = models.CharField(
        max_length=20,
        choices=ClaimStatus.choices,
        default=ClaimStatus.SELECTING
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        null=True,
        blank=True
    )
    submitted_at = models.DateTimeField(null=True, blank=True)

    # Payer confirmation
    received = models.BooleanField(default=False)
    received_at = models.DateTimeField(null=True, blank=True)

    expires_at = models.DateTimeField()

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'claims'
        constraints = [
            models.UniqueConstraint(
                fields=['bill', 'session_id'],
                condition=models.Q(status='SELECTING'),
                name='one_selecting_claim_per_session',
            ),
        ]
        indexes = [
            models.Index(fields=['bill', 'status'], name='claims_bill_id_2b8c41_idx'),
            models.Index(fields=['bill', 'session_id', 'status'], name='claims_bill_id_7d3e90_idx'),
            models.Index(fields=['status', 'expires_at'], name='claims_status_f61a28_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.guest_name} ({self.status})"

    def is_expired(self, now=None):
        return self.expires_at <= (now or timezone.now())

