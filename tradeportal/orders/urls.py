from django.urls import path
from .views import (
    order_list_create, order_detail, order_change_status, order_update_delivery, order_payments,
    order_invoices, order_send_tracking_link, invoice_list, invoice_detail, invoice_void, order_track
)

urlpatterns = [
    # Order endpoints
    path('orders/', order_list_create, name='order-list-create'),
    path('orders/<int:pk>/', order_detail, name='order-detail'),
    path('orders/<int:pk>/status/', order_change_status, name='order-change-status'),
    path('orders/<int:pk>/delivery/', order_update_delivery, name='order-update-delivery'),
    path('orders/<int:pk>/payments/', order_payments, name='order-payments'),
    path('orders/<int:pk>/invoices/', order_invoices, name='order-invoices'),
    path('orders/<int:pk>/send-tracking-link/', order_send_tracking_link, name='order-send-tracking-link'),

    # Public tracking link
    path('orders/track/<str:token>/', order_track, name='order-track'),

    # Invoice endpoints
    path('invoices/', invoice_list, name='invoice-list'),
    path('invoices/<int:pk>/', invoice_detail, name='invoice-detail'),
    path('invoices/<int:pk>/void/', invoice_void, name='invoice-void'),
]
