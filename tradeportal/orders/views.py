import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date

from tradeportal.core.exceptions import TradePortalError, error_response
from tradeportal.core.permissions import IsStaffRole
from . import services
from .models import Order, Invoice
from .serializers import (
    OrderSerializer, OrderListSerializer, OrderCreateSerializer, StatusChangeSerializer, DeliveryUpdateSerializer,
    PaymentSerializer, PaymentCreateSerializer, InvoiceSerializer, InvoiceGenerateSerializer, PublicOrderSerializer
)

logger = logging.getLogger(__name__)


def _order_response(order, status_code=status.HTTP_200_OK):
    order = Order.objects.select_related('customer', 'quote').prefetch_related(
        'items', 'status_history__changed_by', 'payments'
    ).get(pk=order.pk)
    return Response(OrderSerializer(order).data, status=status_code)


# Order views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def order_list_create(request):
    """List orders with filters or create a manual order"""
    if request.method == 'GET':
        queryset = Order.objects.select_related('customer', 'quote')
        order_status = request.query_params.get('status')
        if order_status:
            queryset = queryset.filter(status__in=order_status.split(','))
        customer_id = request.query_params.get('customer')
        if customer_id:
            queryset = queryset.filter(customer_id=customer_id)

        date_from = parse_date(request.query_params.get('date_from') or '')
        date_to = parse_date(request.query_params.get('date_to') or '')
        if date_from:
            queryset = queryset.filter(created_at__date__gte=date_from)
        if date_to:
            queryset = queryset.filter(created_at__date__lte=date_to)

        search = request.query_params.get('search')
        if search:
            queryset = queryset.filter(
                Q(order_number__icontains=search) |
                Q(tracking_number__icontains=search) |
                Q(customer__company_name__icontains=search) |
                Q(quote__quote_number__icontains=search)
            )
        serializer = OrderListSerializer(queryset.order_by('-created_at'), many=True)
        return Response(serializer.data)

    serializer = OrderCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        order = services.create_manual_order(
            data['customer'],
            data['items'],
            request.user,
            currency=data['currency'],
            shipping_fee=data['shipping_fee'],
            tax_amount=data['tax_amount'],
            notes=data['notes'],
            delivery_address=data['delivery_address'],
            payment_method=data['payment_method'],
            request=request,
        )
    except TradePortalError as e:
        return error_response(e)
    return _order_response(order, status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, IsStaffRole])
def order_detail(request, pk):
    """Retrieve an order, or update its internal notes"""
    order = get_object_or_404(Order, pk=pk)
    if request.method == 'PATCH':
        if 'notes' in request.data:
            order.notes = request.data.get('notes') or ''
            order.save(update_fields=['notes', 'updated_at'])
    return _order_response(order)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def order_change_status(request, pk):
    order = get_object_or_404(Order, pk=pk)
    serializer = StatusChangeSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        order = services.change_status(
            order,
            serializer.validated_data['status'],
            request.user,
            notes=serializer.validated_data['notes'],
            request=request,
        )
    except TradePortalError as e:
        return error_response(e)
    return _order_response(order)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsStaffRole])
def order_update_delivery(request, pk):
    order = get_object_or_404(Order, pk=pk)
    serializer = DeliveryUpdateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        order = services.update_delivery(order, serializer.validated_data, request.user, request=request)
    except TradePortalError as e:
        return error_response(e)
    return _order_response(order)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def order_payments(request, pk):
    """List payments for an order or record a new one"""
    order = get_object_or_404(Order, pk=pk)
    if request.method == 'GET':
        serializer = PaymentSerializer(order.payments.select_related('recorded_by'), many=True)
        return Response(serializer.data)

    serializer = PaymentCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        payment = services.record_payment(
            order,
            data['amount'],
            data['payment_method'],
            request.user,
            reference=data['reference'],
            notes=data['notes'],
            proof_file_url=data['proof_file_url'],
            request=request,
        )
    except TradePortalError as e:
        return error_response(e)
    return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def order_invoices(request, pk):
    """List documents for an order or generate one (proforma, commercial, packing list)"""
    order = get_object_or_404(Order, pk=pk)
    if request.method == 'GET':
        serializer = InvoiceSerializer(order.invoices.all(), many=True, context={'request': request})
        return Response(serializer.data)

    serializer = InvoiceGenerateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        invoice, created = services.generate_invoice(
            order, serializer.validated_data['invoice_type'], request.user, request=request
        )
    except TradePortalError as e:
        return error_response(e)
    return Response(
        InvoiceSerializer(invoice, context={'request': request}).data,
        status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
    )


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def order_send_tracking_link(request, pk):
    order = get_object_or_404(Order.objects.select_related('customer'), pk=pk)
    try:
        token = services.send_tracking_link(order, request.user, request=request)
    except TradePortalError as e:
        return error_response(e)
    return Response({
        'message': f"Tracking link sent to {token.email}",
        'expires_at': token.expires_at,
    })


# Invoice views
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def invoice_list(request):
    queryset = Invoice.objects.select_related('order', 'customer')
    for param in ('invoice_type', 'status'):
        value = request.query_params.get(param)
        if value:
            queryset = queryset.filter(**{param: value})
    customer_id = request.query_params.get('customer')
    if customer_id:
        queryset = queryset.filter(customer_id=customer_id)
    search = request.query_params.get('search')
    if search:
        queryset = queryset.filter(
            Q(invoice_number__icontains=search) |
            Q(order__order_number__icontains=search) |
            Q(customer__company_name__icontains=search)
        )
    serializer = InvoiceSerializer(queryset.order_by('-created_at'), many=True, context={'request': request})
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def invoice_detail(request, pk):
    invoice = get_object_or_404(Invoice.objects.select_related('order', 'customer'), pk=pk)
    return Response(InvoiceSerializer(invoice, context={'request': request}).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def invoice_void(request, pk):
    invoice = get_object_or_404(Invoice, pk=pk)
    try:
        invoice = services.void_invoice(invoice, request.user, reason=request.data.get('reason', ''), request=request)
    except TradePortalError as e:
        return error_response(e)
    return Response(InvoiceSerializer(invoice, context={'request': request}).data)


# Public tracking link
@api_view(['GET'])
@permission_classes([AllowAny])
def order_track(request, token):
    try:
        order = services.get_order_for_tracking(token)
    except TradePortalError as e:
        return error_response(e)
    return Response(PublicOrderSerializer(order).data)
