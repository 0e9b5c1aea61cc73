from rest_framework import viewsets, status
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema

from .exceptions import SplitServiceError
from .serializers import (
    # Input serializers
    BillCreateSerializer,
    PayerNameSerializer,
    LineItemInputSerializer,
    ExtractionSerializer,
    # Output serializers
    BillSerializer,
    LineItemSerializer,
    SharedBillSerializer,
    ErrorSerializer,
)
from apps.ledger.services import (
    create_bill,
    get_bill,
    get_bill_by_share_token,
    update_payer_name,
    apply_extraction,
    list_line_items,
    add_line_item,
    update_line_item,
    delete_line_item,
)
from apps.claims.serializers import RemainingQuantitySerializer
from apps.claims.services import get_remaining_quantities, RemainingView


class BillViewSet(viewsets.ViewSet):
    """
    ViewSet for the payer's bill.

    All business logic is handled by services.
    Views are thin HTTP handlers only.

    create: Create a bill for a payer
    retrieve: Get a bill with its items
    partial_update: Rename the payer
    """

    permission_classes = [AllowAny]

    @extend_schema(request=BillCreateSerializer, responses={201: BillSerializer, 400: ErrorSerializer})
    def create(self, request):
        """Create a new bill."""
        serializer = BillCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            bill = create_bill(
                payer_name=serializer.validated_data['payer_name'],
                payment_handle=serializer.validated_data['payment_handle'],
            )
        except SplitServiceError as e:
            return Response(e.as_response_data(), status=e.status_code)

        return Response(BillSerializer(bill).data, status=status.HTTP_201_CREATED)

    @extend_schema(responses={200: BillSerializer, 404: ErrorSerializer})
    def retrieve(self, request, pk=None):
        """Get a bill with its items."""
        try:
            bill = get_bill(bill_id=pk)
        except SplitServiceError as e:
            return Response(e.as_response_data(), status=e.status_code)

        return Response(BillSerializer(bill).data)

    @extend_schema(request=PayerNameSerializer, responses={200: BillSerializer, 404: ErrorSerializer})
    def partial_update(self, request, pk=None):
        """Rename the payer."""
        serializer = PayerNameSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            bill = update_payer_name(bill_id=pk, payer_name=serializer.validated_data['payer_name'])
        except SplitServiceError as e:
            return Response(e.as_response_data(), status=e.status_code)

        return Response(BillSerializer(bill).data)

    @extend_schema(request=ExtractionSerializer, responses={200: BillSerializer, 404: ErrorSerializer})
    @action(detail=True, methods=['post'])
    def extraction(self, request, pk=None):
        """
        Apply a receipt extraction result, replacing the bill's items.

        POST /api/bills/{id}/extraction/
        """
        serializer = ExtractionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            bill = apply_extraction(bill_id=pk, extraction=serializer.validated_data)
        except SplitServiceError as e:
            return Response(e.as_response_data(), status=e.status_code)

        return Response(BillSerializer(bill).data)

    @extend_schema(
        methods=['GET'],
        responses={200: LineItemSerializer(many=True)},
    )
    @extend_schema(
        methods=['POST'],
        request=LineItemInputSerializer,
        responses={201: LineItemSerializer, 404: ErrorSerializer},
    )
    @action(detail=True, methods=['get', 'post'])
    def items(self, request, pk=None):
        """
        List or add line items.

        GET  /api/bills/{id}/items/
        POST /api/bills/{id}/items/
        """
        if request.method == 'GET':
            try:
                get_bill(bill_id=pk)
            except SplitServiceError as e:
                return Response(e.as_response_data(), status=e.status_code)
            items = list_line_items(bill_id=pk)
            return Response(LineItemSerializer(items, many=True).data)

        serializer = LineItemInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            item = add_line_item(bill_id=pk, **serializer.validated_data)
        except SplitServiceError as e:
            return Response(e.as_response_data(), status=e.status_code)

        return Response(LineItemSerializer(item).data, status=status.HTTP_201_CREATED)


class LineItemViewSet(viewsets.ViewSet):
    """
    ViewSet for editing and deleting single line items.

    update: Replace name, quantity and unit price
    destroy: Delete the item
    """

    permission_classes = [AllowAny]

    @extend_schema(request=LineItemInputSerializer, responses={200: LineItemSerializer, 409: ErrorSerializer})
    def update(self, request, pk=None):
        """Edit a line item."""
        serializer = LineItemInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            item = update_line_item(item_id=pk, **serializer.validated_data)
        except SplitServiceError as e:
            return Response(e.as_response_data(), status=e.status_code)

        return Response(LineItemSerializer(item).data)

    @extend_schema(responses={204: None, 409: ErrorSerializer})
    def destroy(self, request, pk=None):
        """Delete a line item."""
        try:
            delete_line_item(item_id=pk)
        except SplitServiceError as e:
            return Response(e.as_response_data(), status=e.status_code)

        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema(
    responses={200: SharedBillSerializer, 404: ErrorSerializer},
    description="Guest view of a bill reached through its share link, with remaining quantities counting paid claims only.",
    tags=['split'],
)
@api_view(['GET'])
@permission_classes([AllowAny])
def shared_bill(request, share_token):
    """Get a bill by share token - thin HTTP handler."""
    try:
        bill = get_bill_by_share_token(share_token=share_token)
        remaining = get_remaining_quantities(bill_id=bill.id, view=RemainingView.PAID)
    except SplitServiceError as e:
        return Response(e.as_response_data(), status=e.status_code)

    data = SharedBillSerializer(bill).data
    data['remaining'] = RemainingQuantitySerializer(remaining, many=True).data
    return Response(data)
