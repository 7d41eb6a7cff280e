import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date

from tradeportal.core.exceptions import TradePortalError, error_response
from tradeportal.core.models import AuditLog
from tradeportal.core.permissions import IsAdminRole, IsStaffRole
from tradeportal.core.serializers import AuditLogSerializer
from tradeportal.core.utils import create_audit_log, get_client_ip, get_user_agent
from tradeportal.core.views import filter_audit_logs
from tradeportal.crm.serializers import CustomerSerializer, LeadSerializer
from tradeportal.orders.serializers import OrderSerializer
from . import services
from .models import Quote, QuoteRequest, QuoteRevision
from .serializers import (
    QuoteSerializer, QuoteListSerializer, QuoteCreateSerializer, QuoteUpdateSerializer, QuoteSendSerializer,
    CustomerResponseSerializer, ConvertToOrderSerializer, ReasonSerializer, LinkRequestSerializer,
    MagicLinkResponseSerializer, PublicQuoteSerializer, QuoteRequestSerializer, QuoteRequestUpdateSerializer,
    QuoteRevisionSerializer
)

logger = logging.getLogger(__name__)


def _quote_response(quote, request, status_code=status.HTTP_200_OK):
    quote = Quote.objects.select_related('customer', 'lead', 'linked_quote_request', 'approved_by', 'created_by').get(pk=quote.pk)
    return Response(QuoteSerializer(quote, context={'request': request}).data, status=status_code)


# Quote views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_list_create(request):
    """
    List quotes or create one (the quote wizard).

    Trashed quotes are hidden unless ?trash=true, which lists only the trash.
    """
    if request.method == 'GET':
        if request.query_params.get('trash') in ('true', '1'):
            queryset = Quote.objects.trashed()
        else:
            queryset = Quote.objects.active()
        queryset = queryset.select_related('customer').prefetch_related('items')

        quote_status = request.query_params.get('status')
        if quote_status:
            queryset = queryset.filter(status__in=quote_status.split(','))
        customer_id = request.query_params.get('customer')
        if customer_id:
            queryset = queryset.filter(customer_id=customer_id)
        origin_type = request.query_params.get('origin_type')
        if origin_type:
            queryset = queryset.filter(origin_type=origin_type)

        date_from = parse_date(request.query_params.get('date_from') or '')
        date_to = parse_date(request.query_params.get('date_to') or '')
        if date_from:
            queryset = queryset.filter(created_at__date__gte=date_from)
        if date_to:
            queryset = queryset.filter(created_at__date__lte=date_to)

        search = request.query_params.get('search')
        if search:
            queryset = queryset.filter(
                Q(quote_number__icontains=search) |
                Q(title__icontains=search) |
                Q(customer__company_name__icontains=search) |
                Q(customer_email__icontains=search)
            )
        serializer = QuoteListSerializer(queryset.order_by('-created_at'), many=True)
        return Response(serializer.data)

    serializer = QuoteCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        quote = services.create_quote(
            request.user,
            data['items'],
            customer=data.get('customer'),
            customer_email=data.get('customer_email', ''),
            lead=data.get('lead'),
            title=data.get('title', ''),
            description=data.get('description', ''),
            currency=data.get('currency', 'USD'),
            valid_until=data.get('valid_until'),
            apply_tax=data.get('apply_tax', False),
            shipping_fee=data.get('shipping_fee', 0),
            notes=data.get('notes', ''),
            terms=data.get('terms'),
            origin_type=data.get('origin_type', 'manual'),
            request=request,
        )
    except TradePortalError as e:
        return error_response(e)
    return _quote_response(quote, request, status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_detail(request, pk):
    """Retrieve or edit a quote. DELETE moves it to the trash."""
    quote = get_object_or_404(Quote, pk=pk)

    if request.method == 'GET':
        return _quote_response(quote, request)

    if request.method == 'DELETE':
        try:
            services.trash_quote(quote, request.user, reason=request.data.get('reason', ''), request=request)
        except TradePortalError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = QuoteUpdateSerializer(data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    fields = dict(serializer.validated_data)
    items = fields.pop('items', None)
    try:
        quote = services.update_quote(quote, request.user, fields=fields, items=items, request=request)
    except TradePortalError as e:
        return error_response(e)
    return _quote_response(quote, request)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_generate_pdf(request, pk):
    quote = get_object_or_404(Quote, pk=pk)
    try:
        quote = services.generate_pdf(quote, request.user, request=request)
    except TradePortalError as e:
        return error_response(e)
    return _quote_response(quote, request)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_submit_for_review(request, pk):
    quote = get_object_or_404(Quote, pk=pk)
    try:
        quote = services.submit_for_review(quote, request.user, request=request)
    except TradePortalError as e:
        return error_response(e)
    return _quote_response(quote, request)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_approve(request, pk):
    quote = get_object_or_404(Quote, pk=pk)
    try:
        quote = services.approve(quote, request.user, request=request)
    except TradePortalError as e:
        return error_response(e)
    return _quote_response(quote, request)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_return_to_draft(request, pk):
    quote = get_object_or_404(Quote, pk=pk)
    serializer = ReasonSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    try:
        quote = services.return_to_draft(quote, request.user, reason=serializer.validated_data['reason'], request=request)
    except TradePortalError as e:
        return error_response(e)
    return _quote_response(quote, request)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_send(request, pk):
    """E-mail the quote PDF and approval link to the customer"""
    quote = get_object_or_404(Quote, pk=pk)
    serializer = QuoteSendSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    try:
        quote = services.send_quote(quote, request.user, message=serializer.validated_data['message'], request=request)
    except TradePortalError as e:
        return error_response(e)
    return _quote_response(quote, request)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_customer_response(request, pk):
    """Record an accept/reject the customer gave by phone or e-mail"""
    quote = get_object_or_404(Quote, pk=pk)
    serializer = CustomerResponseSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        quote = services.record_customer_response(
            quote,
            serializer.validated_data['decision'],
            notes=serializer.validated_data['notes'],
            user=request.user,
            request=request,
        )
    except TradePortalError as e:
        return error_response(e)
    return _quote_response(quote, request)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_convert_to_order(request, pk):
    quote = get_object_or_404(Quote, pk=pk)
    serializer = ConvertToOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        order = services.convert_to_order(
            quote,
            request.user,
            confirmation_method=data['confirmation_method'],
            confirmation_notes=data['confirmation_notes'],
            payment_method=data['payment_method'],
            initial_status=data['initial_status'],
            request=request,
        )
    except TradePortalError as e:
        return error_response(e)
    return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_restore(request, pk):
    quote = get_object_or_404(Quote, pk=pk)
    try:
        quote = services.restore_quote(quote, request.user, request=request)
    except TradePortalError as e:
        return error_response(e)
    return _quote_response(quote, request)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def quote_purge(request, pk):
    """Permanently delete a quote from the trash"""
    quote = get_object_or_404(Quote, pk=pk)
    try:
        services.purge_quote(quote, user=request.user, request=request)
    except TradePortalError as e:
        return error_response(e)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_reopen(request, pk):
    quote = get_object_or_404(Quote, pk=pk)
    try:
        quote = services.reopen_quote(quote, request.user, request=request)
    except TradePortalError as e:
        return error_response(e)
    return _quote_response(quote, request)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_expire(request, pk):
    quote = get_object_or_404(Quote, pk=pk)
    try:
        quote = services.expire_quote(quote, user=request.user, request=request)
    except TradePortalError as e:
        return error_response(e)
    return _quote_response(quote, request)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_link_request(request, pk):
    quote = get_object_or_404(Quote, pk=pk)
    serializer = LinkRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    result = services.link_quote_to_request(
        quote, serializer.validated_data['request_number'], user=request.user, request=request
    )
    return Response(result, status=status.HTTP_200_OK if result['success'] else status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_audit_trail(request, pk):
    """Audit events for one quote, oldest first"""
    quote = get_object_or_404(Quote, pk=pk)
    queryset = AuditLog.objects.select_related('user').filter(resource_type='Quote', resource_id=str(quote.id))
    params = request.query_params.copy()
    for key in ('resource_type', 'resource_id'):
        params.pop(key, None)
    queryset = filter_audit_logs(queryset, params)
    serializer = AuditLogSerializer(queryset.order_by('created_at'), many=True)
    return Response(serializer.data)


# Revision views
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_revision_list(request):
    queryset = QuoteRevision.objects.select_related('quote')
    revision_status = request.query_params.get('status')
    if revision_status:
        queryset = queryset.filter(status=revision_status)
    quote_id = request.query_params.get('quote')
    if quote_id:
        queryset = queryset.filter(quote_id=quote_id)
    serializer = QuoteRevisionSerializer(queryset.order_by('-created_at'), many=True)
    return Response(serializer.data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_revision_detail(request, pk):
    revision = get_object_or_404(QuoteRevision, pk=pk)
    serializer = QuoteRevisionSerializer(revision, data=request.data, partial=True)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    revision = services.update_revision(
        revision,
        request.user,
        status=serializer.validated_data.get('status'),
        admin_note=serializer.validated_data.get('admin_note'),
        request=request,
    )
    return Response(QuoteRevisionSerializer(revision).data)


# Quote request views
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_request_list(request):
    queryset = QuoteRequest.objects.select_related('customer').prefetch_related('items')
    request_status = request.query_params.get('status')
    if request_status:
        queryset = queryset.filter(status=request_status)
    search = request.query_params.get('search')
    if search:
        queryset = queryset.filter(
            Q(request_number__icontains=search) |
            Q(title__icontains=search) |
            Q(customer__company_name__icontains=search) |
            Q(lead_company_name__icontains=search) |
            Q(lead_email__icontains=search)
        )
    serializer = QuoteRequestSerializer(queryset.order_by('-created_at'), many=True)
    return Response(serializer.data)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_request_detail(request, pk):
    quote_request = get_object_or_404(QuoteRequest, pk=pk)
    if request.method == 'GET':
        return Response(QuoteRequestSerializer(quote_request).data)

    old_status = quote_request.status
    serializer = QuoteRequestUpdateSerializer(quote_request, data=request.data, partial=True)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    serializer.save()
    create_audit_log(
        request=request,
        event_type='data_update',
        action='update',
        resource_type='QuoteRequest',
        resource_id=quote_request.id,
        resource_reference=quote_request.request_number,
        changes={'before': {'status': old_status}, 'after': {'status': quote_request.status}},
    )
    return Response(QuoteRequestSerializer(quote_request).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_request_create_quote(request, pk):
    quote_request = get_object_or_404(QuoteRequest, pk=pk)
    try:
        quote = services.create_quote_from_request(quote_request, request.user, request=request)
    except TradePortalError as e:
        return error_response(e)
    return _quote_response(quote, request, status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_request_convert_to_lead(request, pk):
    quote_request = get_object_or_404(QuoteRequest, pk=pk)
    try:
        lead, customer = services.convert_request_to_lead(quote_request, request.user, request=request)
    except TradePortalError as e:
        return error_response(e)
    return Response({
        'lead': LeadSerializer(lead).data,
        'customer': CustomerSerializer(customer).data,
    }, status=status.HTTP_201_CREATED)


# Public approval link
@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def quote_respond_via_token(request, token):
    """
    Customer approval page backend. GET returns the quote summary, POST records
    the decision. Errors carry a `reason` of invalid, used or expired.
    """
    if request.method == 'GET':
        try:
            quote = services.get_quote_for_approval(token)
        except TradePortalError as e:
            return error_response(e)
        return Response(PublicQuoteSerializer(quote, context={'request': request}).data)

    serializer = MagicLinkResponseSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        quote = services.respond_via_token(
            token,
            serializer.validated_data['action'],
            notes=serializer.validated_data['notes'],
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
    except TradePortalError as e:
        return error_response(e)
    return Response({
        'quote_number': quote.quote_number,
        'status': quote.status,
        'message': 'Thank you, your response has been recorded.',
    })
