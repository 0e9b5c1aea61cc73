from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'claims'

# Router for ViewSets
router = DefaultRouter()
router.register(r'', views.ClaimViewSet, basename='claim')

urlpatterns = [
    # Guest endpoints
    # POST   /api/claims/item-quantity/           - Upsert item quantity
    # POST   /api/claims/tip/                     - Upsert tip
    # POST   /api/claims/cleanup/                 - Drop session's selection
    # GET    /api/claims/session/?bill=&session=  - Session's claims
    path('item-quantity/', views.item_quantity, name='item-quantity'),
    path('tip/', views.tip, name='tip'),
    path('cleanup/', views.cleanup, name='cleanup'),
    path('session/', views.session_claims, name='session-claims'),

    # Payer console
    # GET    /api/claims/bills/{id}/summary/?view=    - Totals and claim listing
    # GET    /api/claims/bills/{id}/remaining/?view=  - Remaining quantities
    # GET    /api/claims/bills/{id}/live/             - Live selections
    path('bills/<str:bill_id>/summary/', views.bill_summary, name='bill-summary'),
    path('bills/<str:bill_id>/remaining/', views.bill_remaining, name='bill-remaining'),
    path('bills/<str:bill_id>/live/', views.bill_live, name='bill-live'),

    # Claim ViewSet actions
    # POST   /api/claims/{id}/submit/      - Submit (SELECTING -> PAID)
    # POST   /api/claims/{id}/received/    - Confirm received
    # DELETE /api/claims/{id}/received/    - Clear received

    # Include router URLs
    path('', include(router.urls)),
]
