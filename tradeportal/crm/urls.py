from django.urls import path
from .views import (
    customer_list_create, customer_detail,
    lead_list_create, lead_detail, lead_convert, lead_capture,
    activity_list_create,
)

urlpatterns = [
    # Customer endpoints
    path('customers/', customer_list_create, name='customer-list-create'),
    path('customers/<int:pk>/', customer_detail, name='customer-detail'),

    # Lead endpoints
    path('leads/', lead_list_create, name='lead-list-create'),
    path('leads/capture/', lead_capture, name='lead-capture'),
    path('leads/<int:pk>/', lead_detail, name='lead-detail'),
    path('leads/<int:pk>/convert/', lead_convert, name='lead-convert'),

    # Activity endpoints
    path('activities/', activity_list_create, name='activity-list-create'),
]
