from rest_framework import serializers
from apps.ledger.models import Claim, ClaimStatus, PaymentMethod
from .services import annotate_claim_totals, coerce_item_quantities


# =============================================================================
# Input Serializers
# =============================================================================
# Request bodies for the API schema; validation happens in the claim session service.

class ItemQuantityInputSerializer(serializers.Serializer):
    """Body of POST /api/claims/item-quantity/."""

    bill_id = serializers.UUIDField()
    item_id = serializers.UUIDField()
    session_id = serializers.UUIDField()
    guest_name = serializers.CharField(max_length=100)
    quantity = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=0, max_value=10)


class TipInputSerializer(serializers.Serializer):
    """Body of POST /api/claims/tip/."""

    bill_id = serializers.UUIDField()
    session_id = serializers.UUIDField()
    guest_name = serializers.CharField(max_length=100)
    tip_amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, max_value=10000)


class SessionInputSerializer(serializers.Serializer):
    """Body of POST /api/claims/cleanup/."""

    bill_id = serializers.UUIDField()
    session_id = serializers.UUIDField()


class SubmitInputSerializer(serializers.Serializer):
    """Body of POST /api/claims/{id}/submit/."""

    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    session_id = serializers.UUIDField(required=False)


# =============================================================================
# Output Serializers
# =============================================================================

class ClaimSerializer(serializers.ModelSerializer):
    """Claim with computed amounts."""

    item_quantities = serializers.SerializerMethodField()
    items_amount = serializers.SerializerMethodField()
    total = serializers.SerializerMethodField()
    is_expired = serializers.SerializerMethodField()

    class Meta:
        model = Claim
        fields = [
            'id',
            'bill',
            'guest_name',
            'session_id',
            'item_quantities',
            'tip_amount',
            'items_amount',
            'total',
            'status',
            'payment_method',
            'submitted_at',
            'received',
            'received_at',
            'expires_at',
            'is_expired',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def _annotated(self, obj):
        if not hasattr(obj, 'total'):
            annotate_claim_totals([obj], obj.bill.items.all())
        return obj

    def get_item_quantities(self, obj) -> dict:
        return {
            item_id: str(quantity)
            for item_id, quantity in coerce_item_quantities(obj.item_quantities).items()
        }

    def get_items_amount(self, obj) -> str:
        return f"{self._annotated(obj).items_amount:.2f}"

    def get_total(self, obj) -> str:
        return f"{self._annotated(obj).total:.2f}"

    def get_is_expired(self, obj) -> bool:
        return obj.status == ClaimStatus.SELECTING and obj.is_expired()


class RemainingQuantitySerializer(serializers.Serializer):
    """Remaining quantity of one line item."""

    item_id = serializers.UUIDField()
    name = serializers.CharField()
    quantity = serializers.DecimalField(max_digits=8, decimal_places=2)
    price_per_unit = serializers.DecimalField(max_digits=10, decimal_places=2)
    claimed = serializers.DecimalField(max_digits=10, decimal_places=2)
    remaining = serializers.DecimalField(max_digits=8, decimal_places=2)


class ClaimCountsSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    selecting = serializers.IntegerField()
    paid = serializers.IntegerField()


class StatusTotalsSerializer(serializers.Serializer):
    selecting = serializers.DecimalField(max_digits=12, decimal_places=2)
    paid = serializers.DecimalField(max_digits=12, decimal_places=2)
    tips = serializers.DecimalField(max_digits=12, decimal_places=2)


class BillSummarySerializer(serializers.Serializer):
    """Payer console summary of a bill."""

    bill_id = serializers.UUIDField()
    view = serializers.CharField()
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    claimed_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    received_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    outstanding_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    unclaimed_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    tip_total = serializers.DecimalField(max_digits=12, decimal_places=2)
    counts = ClaimCountsSerializer()
    status_totals = StatusTotalsSerializer()
    claims = ClaimSerializer(many=True)
