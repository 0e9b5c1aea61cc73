from django.urls import path
from . import views

app_name = 'split'

urlpatterns = [
    # GET /api/split/{share_token}/ - Guest view of a shared bill
    path('<str:share_token>/', views.shared_bill, name='shared-bill'),
]
