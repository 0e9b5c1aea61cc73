from rest_framework import serializers
from .models import Bill, LineItem


# =============================================================================
# Input Serializers
# =============================================================================

class BillCreateSerializer(serializers.Serializer):
    """
    Validate input for creating a bill.

    Fields:
        payer_name (str): Payer display name, sanitized by the service
        payment_handle (str): Payment account handle
    """

    payer_name = serializers.CharField(max_length=200, trim_whitespace=False)
    payment_handle = serializers.CharField(max_length=50)


class PayerNameSerializer(serializers.Serializer):
    """Validate input for renaming the payer."""

    payer_name = serializers.CharField(max_length=200, trim_whitespace=False)


class LineItemInputSerializer(serializers.Serializer):
    """
    Validate one line item payload.

    Quantity granularity and price range are enforced by the service.
    """

    name = serializers.CharField(max_length=200)
    quantity = serializers.DecimalField(max_digits=8, decimal_places=2)
    price_per_unit = serializers.DecimalField(max_digits=10, decimal_places=2)


class ExtractionSerializer(serializers.Serializer):
    """
    Validate a receipt extraction result.

    Fields:
        restaurant_name (str): Optional restaurant name
        total_amount (decimal): Optional receipt total
        image_url (str): Optional reference to the stored receipt image
        items (list): Extracted line items, at least one
    """

    restaurant_name = serializers.CharField(max_length=200, required=False, allow_null=True, allow_blank=True)
    total_amount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    image_url = serializers.CharField(max_length=500, required=False, allow_blank=True)
    items = LineItemInputSerializer(many=True, allow_empty=False)


# =============================================================================
# Output Serializers
# =============================================================================

class LineItemSerializer(serializers.ModelSerializer):
    """Serializer for line items."""

    class Meta:
        model = LineItem
        fields = [
            'id',
            'bill',
            'name',
            'quantity',
            'price_per_unit',
            'total_price',
            'position',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class BillSerializer(serializers.ModelSerializer):
    """Main serializer for bills, with items in display order."""

    items = LineItemSerializer(many=True, read_only=True)
    items_total = serializers.SerializerMethodField()

    class Meta:
        model = Bill
        fields = [
            'id',
            'payer_name',
            'payment_handle',
            'image_url',
            'restaurant_name',
            'total_amount',
            'share_token',
            'items',
            'items_total',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_items_total(self, obj) -> str:
        total = sum((item.total_price for item in obj.items.all()), 0)
        return f"{total:.2f}"


class SharedBillSerializer(serializers.ModelSerializer):
    """Guest-facing bill view reached through the share link."""

    items = LineItemSerializer(many=True, read_only=True)

    class Meta:
        model = Bill
        fields = [
            'id',
            'payer_name',
            'payment_handle',
            'image_url',
            'restaurant_name',
            'total_amount',
            'items',
        ]
        read_only_fields = fields


class ErrorSerializer(serializers.Serializer):
    """Error response body."""

    error = serializers.CharField()
    code = serializers.CharField()
