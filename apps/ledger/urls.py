from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'ledger'

# Router for ViewSets
router = DefaultRouter()
router.register(r'items', views.LineItemViewSet, basename='line-item')
router.register(r'', views.BillViewSet, basename='bill')

urlpatterns = [
    # Bill ViewSet routes
    # POST   /api/bills/                    - Create bill
    # GET    /api/bills/{id}/               - Get bill with items
    # PATCH  /api/bills/{id}/               - Rename payer

    # Custom bill actions
    # POST   /api/bills/{id}/extraction/    - Apply extraction result
    # GET    /api/bills/{id}/items/         - List items
    # POST   /api/bills/{id}/items/         - Add item

    # Line item routes
    # PUT    /api/bills/items/{id}/         - Edit item
    # DELETE /api/bills/items/{id}/         - Delete item

    # Include router URLs
    path('', include(router.urls)),
]
