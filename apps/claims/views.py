from rest_framework import viewsets, status
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from apps.ledger.exceptions import SplitServiceError
from apps.ledger.serializers import ErrorSerializer
from .serializers import (
    # Input serializers
    ItemQuantityInputSerializer,
    TipInputSerializer,
    SessionInputSerializer,
    SubmitInputSerializer,
    # Output serializers
    ClaimSerializer,
    RemainingQuantitySerializer,
    BillSummarySerializer,
)
from apps.claims.services import (
    upsert_item_quantity,
    upsert_tip,
    submit_claim,
    confirm_received,
    unconfirm_received,
    cleanup_session,
    list_session_claims,
    list_live_claims,
    get_remaining_quantities,
    get_bill_summary,
    RemainingView,
)


VIEW_PARAMETER = OpenApiParameter(
    'view', OpenApiTypes.STR, enum=[v.value for v in RemainingView],
    description="'paid' counts PAID claims only, 'live' also counts non-expired SELECTING claims"
)


def _error(e: SplitServiceError) -> Response:
    return Response(e.as_response_data(), status=e.status_code)


# =============================================================================
# Guest endpoints
# =============================================================================

@extend_schema(
    request=ItemQuantityInputSerializer,
    responses={200: ClaimSerializer, 204: None, 400: ErrorSerializer, 404: ErrorSerializer},
    description="Set the quantity of one item on the guest's selecting claim. Quantity 0 removes the item.",
    tags=['claims'],
)
@api_view(['POST'])
@permission_classes([AllowAny])
def item_quantity(request):
    """Upsert an item quantity - thin HTTP handler."""
    try:
        claim = upsert_item_quantity(
            bill_id=request.data.get('bill_id'),
            item_id=request.data.get('item_id'),
            session_id=request.data.get('session_id'),
            guest_name=request.data.get('guest_name'),
            quantity=request.data.get('quantity'),
        )
    except SplitServiceError as e:
        return _error(e)

    if claim is None:
        return Response(status=status.HTTP_204_NO_CONTENT)
    return Response(ClaimSerializer(claim).data)


@extend_schema(
    request=TipInputSerializer,
    responses={200: ClaimSerializer, 400: ErrorSerializer, 404: ErrorSerializer},
    description="Set the tip on the guest's selecting claim, creating the claim if needed.",
    tags=['claims'],
)
@api_view(['POST'])
@permission_classes([AllowAny])
def tip(request):
    """Upsert a tip - thin HTTP handler."""
    try:
        claim = upsert_tip(
            bill_id=request.data.get('bill_id'),
            session_id=request.data.get('session_id'),
            guest_name=request.data.get('guest_name'),
            tip_amount=request.data.get('tip_amount'),
        )
    except SplitServiceError as e:
        return _error(e)

    return Response(ClaimSerializer(claim).data)


@extend_schema(
    request=SessionInputSerializer,
    responses={200: OpenApiTypes.OBJECT, 400: ErrorSerializer},
    description="Drop the guest's selecting claim, e.g. when the tab closes.",
    tags=['claims'],
)
@api_view(['POST'])
@permission_classes([AllowAny])
def cleanup(request):
    """Clean up a guest session - thin HTTP handler."""
    try:
        deleted = cleanup_session(
            bill_id=request.data.get('bill_id'),
            session_id=request.data.get('session_id'),
        )
    except SplitServiceError as e:
        return _error(e)

    return Response({'deleted': deleted})


@extend_schema(
    parameters=[
        OpenApiParameter('bill', OpenApiTypes.UUID, description='Bill ID', required=True),
        OpenApiParameter('session', OpenApiTypes.UUID, description='Session ID', required=True),
    ],
    responses={200: ClaimSerializer(many=True), 400: ErrorSerializer, 404: ErrorSerializer},
    description="The guest's live selection and paid history on a bill.",
    tags=['claims'],
)
@api_view(['GET'])
@permission_classes([AllowAny])
def session_claims(request):
    """List a session's claims - thin HTTP handler."""
    try:
        claims = list_session_claims(
            bill_id=request.query_params.get('bill'),
            session_id=request.query_params.get('session'),
        )
    except SplitServiceError as e:
        return _error(e)

    return Response(ClaimSerializer(claims, many=True).data)


class ClaimViewSet(viewsets.ViewSet):
    """
    ViewSet for claim state transitions.

    submit: SELECTING -> PAID (guest)
    received: confirm or clear the received flag (payer)
    """

    permission_classes = [AllowAny]

    @extend_schema(
        request=SubmitInputSerializer,
        responses={200: ClaimSerializer, 400: ErrorSerializer, 404: ErrorSerializer, 409: ErrorSerializer},
    )
    @action(detail=True, methods=['post'])
    def submit(self, request, pk=None):
        """
        Submit a claim with a payment method.

        POST /api/claims/{id}/submit/
        Body: {"payment_method": "PAYPAL" | "CASH", "session_id": "optional"}
        """
        try:
            claim = submit_claim(
                claim_id=pk,
                payment_method=request.data.get('payment_method'),
                session_id=request.data.get('session_id'),
            )
        except SplitServiceError as e:
            return _error(e)

        return Response(ClaimSerializer(claim).data)

    @extend_schema(request=None, responses={200: ClaimSerializer, 404: ErrorSerializer, 409: ErrorSerializer})
    @action(detail=True, methods=['post', 'delete'])
    def received(self, request, pk=None):
        """
        Confirm (POST) or clear (DELETE) the received flag.

        POST   /api/claims/{id}/received/
        DELETE /api/claims/{id}/received/
        """
        try:
            if request.method == 'DELETE':
                claim = unconfirm_received(claim_id=pk)
            else:
                claim = confirm_received(claim_id=pk)
        except SplitServiceError as e:
            return _error(e)

        return Response(ClaimSerializer(claim).data)


# =============================================================================
# Payer console endpoints
# =============================================================================

@extend_schema(
    parameters=[VIEW_PARAMETER],
    responses={200: BillSummarySerializer, 400: ErrorSerializer, 404: ErrorSerializer},
    description="Totals, counts and claim listing for a bill. Defaults to the live view.",
    tags=['payer'],
)
@api_view(['GET'])
@permission_classes([AllowAny])
def bill_summary(request, bill_id):
    """Get the payer summary of a bill - thin HTTP handler."""
    try:
        summary = get_bill_summary(bill_id=bill_id, view=request.query_params.get('view', RemainingView.LIVE))
    except SplitServiceError as e:
        return _error(e)

    return Response(BillSummarySerializer(summary).data)


@extend_schema(
    parameters=[VIEW_PARAMETER],
    responses={200: RemainingQuantitySerializer(many=True), 400: ErrorSerializer, 404: ErrorSerializer},
    description="Remaining quantity of every line item. Defaults to the paid view.",
    tags=['payer'],
)
@api_view(['GET'])
@permission_classes([AllowAny])
def bill_remaining(request, bill_id):
    """Get remaining quantities - thin HTTP handler."""
    try:
        remaining = get_remaining_quantities(bill_id=bill_id, view=request.query_params.get('view'))
    except SplitServiceError as e:
        return _error(e)

    return Response(RemainingQuantitySerializer(remaining, many=True).data)


@extend_schema(
    responses={200: ClaimSerializer(many=True), 400: ErrorSerializer},
    description="Non-expired selecting claims on a bill, newest first.",
    tags=['payer'],
)
@api_view(['GET'])
@permission_classes([AllowAny])
def bill_live(request, bill_id):
    """List live selections - thin HTTP handler."""
    try:
        claims = list_live_claims(bill_id=bill_id)
    except SplitServiceError as e:
        return _error(e)

    return Response(ClaimSerializer(claims, many=True).data)
