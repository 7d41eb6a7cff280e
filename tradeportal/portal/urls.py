from django.urls import path
from .views import (
    cart_detail, cart_items, cart_item_detail, cart_submit, portal_quote_requests, portal_quotes,
    portal_quote_detail, portal_quote_respond, portal_quote_revisions, portal_orders, portal_order_detail,
    portal_invoices, portal_profile
)

urlpatterns = [
    # Cart endpoints
    path('portal/cart/', cart_detail, name='portal-cart'),
    path('portal/cart/items/', cart_items, name='portal-cart-items'),
    path('portal/cart/items/<int:item_id>/', cart_item_detail, name='portal-cart-item-detail'),
    path('portal/cart/submit/', cart_submit, name='portal-cart-submit'),

    # Customer records
    path('portal/quote-requests/', portal_quote_requests, name='portal-quote-requests'),
    path('portal/quotes/', portal_quotes, name='portal-quotes'),
    path('portal/quotes/<int:pk>/', portal_quote_detail, name='portal-quote-detail'),
    path('portal/quotes/<int:pk>/respond/', portal_quote_respond, name='portal-quote-respond'),
    path('portal/quotes/<int:pk>/revisions/', portal_quote_revisions, name='portal-quote-revisions'),
    path('portal/orders/', portal_orders, name='portal-orders'),
    path('portal/orders/<int:pk>/', portal_order_detail, name='portal-order-detail'),
    path('portal/invoices/', portal_invoices, name='portal-invoices'),
    path('portal/profile/', portal_profile, name='portal-profile'),
]
