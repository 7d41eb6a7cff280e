"""
Customer portal endpoints. Every view is scoped to the customer record
linked to the logged-in account.
"""
import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404

from tradeportal.core.exceptions import TradePortalError, error_response
from tradeportal.core.permissions import IsCustomerRole
from tradeportal.orders.models import Order, Invoice
from tradeportal.orders.serializers import InvoiceSerializer
from tradeportal.quotes import services as quote_services
from tradeportal.quotes.models import Quote, QuoteRequest
from tradeportal.quotes.serializers import QuoteRevisionSerializer, RevisionRequestSerializer
from tradeportal.quotes.workflow import CUSTOMER_VISIBLE_STATUSES
from . import services
from .serializers import (
    CartSerializer, CartItemSerializer, CartItemAddSerializer, CartSubmitSerializer,
    PortalQuoteRequestSerializer, PortalQuoteSerializer, PortalQuoteResponseSerializer,
    PortalOrderSerializer, ProfileSerializer
)

logger = logging.getLogger(__name__)


def _customer_quotes(customer):
    if customer is None:
        return Quote.objects.none()
    return Quote.objects.active().filter(customer=customer, status__in=CUSTOMER_VISIBLE_STATUSES)


# Cart views
@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated, IsCustomerRole])
def cart_detail(request):
    """Current cart, or DELETE to empty it"""
    if request.method == 'DELETE':
        cart = services.clear_cart(request.user)
    else:
        cart = services.get_cart(request.user)
    return Response(CartSerializer(cart).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCustomerRole])
def cart_items(request):
    """Add a product (or a free-text item) to the cart"""
    serializer = CartItemAddSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        item, created = services.add_to_cart(request.user, **serializer.validated_data)
    except TradePortalError as e:
        return error_response(e)
    return Response(CartItemSerializer(item).data, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsCustomerRole])
def cart_item_detail(request, item_id):
    cart = services.get_cart(request.user)
    item = get_object_or_404(cart.items, pk=item_id)

    if request.method == 'DELETE':
        item.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = CartItemSerializer(item, data=request.data, partial=True)
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCustomerRole])
def cart_submit(request):
    """Submit the cart as a quote request"""
    serializer = CartSubmitSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        quote_request = services.submit_cart(request.user, **serializer.validated_data)
    except TradePortalError as e:
        return error_response(e)
    return Response(PortalQuoteRequestSerializer(quote_request).data, status=status.HTTP_201_CREATED)


# Quote request views
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsCustomerRole])
def portal_quote_requests(request):
    customer = services.get_portal_customer(request.user)
    if customer is None:
        return Response([])
    queryset = QuoteRequest.objects.filter(customer=customer).prefetch_related('items').order_by('-created_at')
    return Response(PortalQuoteRequestSerializer(queryset, many=True).data)


# Quote views
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsCustomerRole])
def portal_quotes(request):
    customer = services.get_portal_customer(request.user)
    if customer is None:
        return Response([])
    queryset = _customer_quotes(customer).prefetch_related('items').order_by('-sent_at', '-created_at')
    quote_status = request.query_params.get('status')
    if quote_status:
        queryset = queryset.filter(status=quote_status)
    serializer = PortalQuoteSerializer(queryset, many=True, context={'request': request})
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsCustomerRole])
def portal_quote_detail(request, pk):
    customer = services.get_portal_customer(request.user)
    quote = get_object_or_404(_customer_quotes(customer), pk=pk)
    return Response(PortalQuoteSerializer(quote, context={'request': request}).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCustomerRole])
def portal_quote_respond(request, pk):
    """Accept or reject a sent quote from the portal"""
    customer = services.get_portal_customer(request.user)
    quote = get_object_or_404(_customer_quotes(customer), pk=pk)
    serializer = PortalQuoteResponseSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        quote = quote_services.record_customer_response(
            quote,
            serializer.validated_data['decision'],
            notes=serializer.validated_data['notes'],
            user=request.user,
            request=request,
            channel='portal',
        )
    except TradePortalError as e:
        return error_response(e)
    return Response(PortalQuoteSerializer(quote, context={'request': request}).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsCustomerRole])
def portal_quote_revisions(request, pk):
    """Revision requests for one of the customer's quotes"""
    customer = services.get_portal_customer(request.user)
    quote = get_object_or_404(_customer_quotes(customer), pk=pk)

    if request.method == 'GET':
        return Response(QuoteRevisionSerializer(quote.revisions.all(), many=True).data)

    serializer = RevisionRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        revision = quote_services.request_revision(
            quote,
            request.user,
            request_type=serializer.validated_data['request_type'],
            requested_changes=serializer.validated_data['requested_changes'],
            customer_note=serializer.validated_data['customer_note'],
            request=request,
        )
    except TradePortalError as e:
        return error_response(e)
    return Response(QuoteRevisionSerializer(revision).data, status=status.HTTP_201_CREATED)


# Order views
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsCustomerRole])
def portal_orders(request):
    customer = services.get_portal_customer(request.user)
    if customer is None:
        return Response([])
    queryset = Order.objects.filter(customer=customer).select_related('quote').prefetch_related('items')
    return Response(PortalOrderSerializer(queryset.order_by('-created_at'), many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsCustomerRole])
def portal_order_detail(request, pk):
    customer = services.get_portal_customer(request.user)
    order = get_object_or_404(Order.objects.filter(customer=customer), pk=pk)
    return Response(PortalOrderSerializer(order, context={'include_history': True}).data)


# Invoice views
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsCustomerRole])
def portal_invoices(request):
    customer = services.get_portal_customer(request.user)
    if customer is None:
        return Response([])
    queryset = Invoice.objects.filter(customer=customer).exclude(status__in=['draft', 'void']).select_related('order', 'customer')
    serializer = InvoiceSerializer(queryset.order_by('-issue_date', '-created_at'), many=True, context={'request': request})
    return Response(serializer.data)


# Profile
@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def portal_profile(request):
    if request.method == 'GET':
        return Response(ProfileSerializer(request.user).data)
    serializer = ProfileSerializer(request.user, data=request.data, partial=True)
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
