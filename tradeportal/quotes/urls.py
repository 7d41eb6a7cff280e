from django.urls import path
from .views import (
    quote_list_create, quote_detail, quote_generate_pdf, quote_submit_for_review, quote_approve,
    quote_return_to_draft, quote_send, quote_customer_response, quote_convert_to_order, quote_restore,
    quote_purge, quote_reopen, quote_expire, quote_link_request, quote_audit_trail,
    quote_revision_list, quote_revision_detail,
    quote_request_list, quote_request_detail, quote_request_create_quote, quote_request_convert_to_lead,
    quote_respond_via_token
)

urlpatterns = [
    # Quote endpoints
    path('quotes/', quote_list_create, name='quote-list-create'),
    path('quotes/<int:pk>/', quote_detail, name='quote-detail'),
    path('quotes/<int:pk>/generate-pdf/', quote_generate_pdf, name='quote-generate-pdf'),
    path('quotes/<int:pk>/submit-for-review/', quote_submit_for_review, name='quote-submit-for-review'),
    path('quotes/<int:pk>/approve/', quote_approve, name='quote-approve'),
    path('quotes/<int:pk>/return-to-draft/', quote_return_to_draft, name='quote-return-to-draft'),
    path('quotes/<int:pk>/send/', quote_send, name='quote-send'),
    path('quotes/<int:pk>/customer-response/', quote_customer_response, name='quote-customer-response'),
    path('quotes/<int:pk>/convert-to-order/', quote_convert_to_order, name='quote-convert-to-order'),
    path('quotes/<int:pk>/restore/', quote_restore, name='quote-restore'),
    path('quotes/<int:pk>/purge/', quote_purge, name='quote-purge'),
    path('quotes/<int:pk>/reopen/', quote_reopen, name='quote-reopen'),
    path('quotes/<int:pk>/expire/', quote_expire, name='quote-expire'),
    path('quotes/<int:pk>/link-request/', quote_link_request, name='quote-link-request'),
    path('quotes/<int:pk>/audit-trail/', quote_audit_trail, name='quote-audit-trail'),

    # Public approval link
    path('quotes/respond/<str:token>/', quote_respond_via_token, name='quote-respond-via-token'),

    # Revision requests
    path('quote-revisions/', quote_revision_list, name='quote-revision-list'),
    path('quote-revisions/<int:pk>/', quote_revision_detail, name='quote-revision-detail'),

    # Quote request endpoints
    path('quote-requests/', quote_request_list, name='quote-request-list'),
    path('quote-requests/<int:pk>/', quote_request_detail, name='quote-request-detail'),
    path('quote-requests/<int:pk>/create-quote/', quote_request_create_quote, name='quote-request-create-quote'),
    path('quote-requests/<int:pk>/convert-to-lead/', quote_request_convert_to_lead, name='quote-request-convert-to-lead'),
]
