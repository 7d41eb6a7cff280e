import logging
from datetime import datetime, timedelta
from decimal import Decimal

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.cache import cache
from django.db.models import Sum, Count, Q, DecimalField
from django.db.models.functions import TruncMonth
from django.utils import timezone

from tradeportal.core.cache_signals import DASHBOARD_CACHE_PATTERN
from tradeportal.core.permissions import IsStaffRole
from tradeportal.crm.models import Lead
from tradeportal.orders.models import Order, OrderItem
from tradeportal.orders.workflow import REVENUE_STATUSES
from tradeportal.quotes.models import Quote, QuoteRequest

logger = logging.getLogger(__name__)

DASHBOARD_CACHE_TTL = 300

# Quotes that reached the customer; the funnel denominator
QUOTED_STATUSES = ('sent', 'accepted', 'rejected', 'converted', 'expired')


def get_date_range(request):
    """
    Parse date_from / date_to (YYYY-MM-DD). Defaults to the last 30 days.
    Raises ValueError on a malformed date.
    """
    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)

    if not date_from:
        date_from = (timezone.now() - timedelta(days=30)).date()
    else:
        date_from = datetime.strptime(date_from, '%Y-%m-%d').date()

    if not date_to:
        date_to = timezone.now().date()
    else:
        date_to = datetime.strptime(date_to, '%Y-%m-%d').date()

    return date_from, date_to


def get_limit(request, default=10):
    try:
        return max(1, min(int(request.query_params.get('limit', default)), 100))
    except ValueError:
        return default


def invalid_date_response():
    return Response({'error': 'Dates must use the YYYY-MM-DD format'}, status=status.HTTP_400_BAD_REQUEST)


def period(date_from, date_to):
    return {'from': date_from.isoformat(), 'to': date_to.isoformat()}


def rate(numerator, denominator):
    if not denominator:
        return 0.0
    return round(numerator * 100.0 / denominator, 2)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def dashboard(request):
    """Headline CRM numbers for the admin dashboard"""
    try:
        date_from, date_to = get_date_range(request)
    except ValueError:
        return invalid_date_response()

    cache_key = f"{DASHBOARD_CACHE_PATTERN}:{date_from.isoformat()}:{date_to.isoformat()}"
    cached_data = cache.get(cache_key)
    if cached_data is not None:
        logger.debug(f"Dashboard cache HIT for {cache_key}")
        return Response(cached_data)

    quotes = Quote.objects.active().filter(created_at__date__gte=date_from, created_at__date__lte=date_to)
    orders = Order.objects.filter(created_at__date__gte=date_from, created_at__date__lte=date_to)

    quotes_by_status = {row['status']: row['count'] for row in quotes.values('status').annotate(count=Count('id'))}
    orders_by_status = {row['status']: row['count'] for row in orders.values('status').annotate(count=Count('id'))}

    revenue = orders.filter(status__in=REVENUE_STATUSES).aggregate(
        total=Sum('total_amount', output_field=DecimalField())
    )['total'] or Decimal('0.00')

    open_orders = Order.objects.exclude(status='cancelled')
    totals = open_orders.aggregate(
        total=Sum('total_amount', output_field=DecimalField()),
        paid=Sum('amount_paid', output_field=DecimalField()),
    )
    outstanding = (totals['total'] or Decimal('0.00')) - (totals['paid'] or Decimal('0.00'))

    data = {
        'period': period(date_from, date_to),
        'summary': {
            'new_leads': Lead.objects.filter(created_at__date__gte=date_from, created_at__date__lte=date_to).count(),
            'pending_quote_requests': QuoteRequest.objects.filter(status='pending').count(),
            'quotes_created': quotes.count(),
            'orders_created': orders.count(),
            'revenue': float(revenue),
            'outstanding_balance': float(max(outstanding, Decimal('0.00'))),
        },
        'quotes_by_status': quotes_by_status,
        'orders_by_status': orders_by_status,
    }
    cache.set(cache_key, data, DASHBOARD_CACHE_TTL)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def quote_funnel(request):
    """Quote counts per status with conversion and acceptance rates"""
    try:
        date_from, date_to = get_date_range(request)
    except ValueError:
        return invalid_date_response()

    quotes = Quote.objects.active().filter(created_at__date__gte=date_from, created_at__date__lte=date_to)
    counts = {code: 0 for code, _ in Quote.STATUS_CHOICES}
    for row in quotes.values('status').annotate(count=Count('id')):
        counts[row['status']] = row['count']

    quoted = sum(counts[code] for code in QUOTED_STATUSES)
    value_by_status = {
        row['status']: float(row['total'] or 0)
        for row in quotes.values('status').annotate(total=Sum('total_amount', output_field=DecimalField()))
    }

    return Response({
        'period': period(date_from, date_to),
        'counts': counts,
        'value_by_status': value_by_status,
        'total': sum(counts.values()),
        'conversion_rate': rate(counts['converted'], quoted),
        'acceptance_rate': rate(counts['accepted'] + counts['converted'], quoted),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def revenue_report(request):
    """Monthly revenue by currency"""
    try:
        date_from, date_to = get_date_range(request)
    except ValueError:
        return invalid_date_response()

    orders = Order.objects.filter(
        created_at__date__gte=date_from,
        created_at__date__lte=date_to,
        status__in=REVENUE_STATUSES
    )
    monthly = orders.annotate(
        month=TruncMonth('created_at')
    ).values('month', 'currency').annotate(
        revenue=Sum('total_amount', output_field=DecimalField()),
        paid=Sum('amount_paid', output_field=DecimalField()),
        order_count=Count('id')
    ).order_by('month', 'currency')

    totals_by_currency = {
        row['currency']: float(row['total'] or 0)
        for row in orders.values('currency').annotate(total=Sum('total_amount', output_field=DecimalField()))
    }

    return Response({
        'period': period(date_from, date_to),
        'monthly': [
            {
                'month': row['month'].strftime('%Y-%m'),
                'currency': row['currency'],
                'revenue': float(row['revenue'] or 0),
                'paid': float(row['paid'] or 0),
                'order_count': row['order_count'],
            }
            for row in monthly
        ],
        'totals_by_currency': totals_by_currency,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def top_customers(request):
    """Customers ranked by order value in the period"""
    try:
        date_from, date_to = get_date_range(request)
    except ValueError:
        return invalid_date_response()
    limit = get_limit(request)

    rows = Order.objects.filter(
        created_at__date__gte=date_from,
        created_at__date__lte=date_to
    ).exclude(status='cancelled').values(
        'customer__id',
        'customer__company_name',
        'customer__country'
    ).annotate(
        total_value=Sum('total_amount', output_field=DecimalField()),
        order_count=Count('id')
    ).order_by('-total_value')[:limit]

    return Response({
        'period': period(date_from, date_to),
        'customers': [
            {
                'customer_id': row['customer__id'],
                'company_name': row['customer__company_name'],
                'country': row['customer__country'],
                'total_value': float(row['total_value'] or 0),
                'order_count': row['order_count'],
            }
            for row in rows
        ],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def top_products(request):
    """Most ordered products by value, from order lines"""
    try:
        date_from, date_to = get_date_range(request)
    except ValueError:
        return invalid_date_response()
    limit = get_limit(request)

    rows = OrderItem.objects.filter(
        order__created_at__date__gte=date_from,
        order__created_at__date__lte=date_to
    ).exclude(order__status='cancelled').values(
        'product_name'
    ).annotate(
        total_quantity=Sum('quantity', output_field=DecimalField()),
        total_value=Sum('total_price', output_field=DecimalField()),
        order_count=Count('order', distinct=True)
    ).order_by('-total_value')[:limit]

    return Response({
        'period': period(date_from, date_to),
        'products': [
            {
                'product_name': row['product_name'],
                'total_quantity': float(row['total_quantity'] or 0),
                'total_value': float(row['total_value'] or 0),
                'order_count': row['order_count'],
            }
            for row in rows
        ],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def lead_sources(request):
    """Leads and won leads per source"""
    try:
        date_from, date_to = get_date_range(request)
    except ValueError:
        return invalid_date_response()

    rows = Lead.objects.filter(
        created_at__date__gte=date_from,
        created_at__date__lte=date_to
    ).values('source').annotate(
        lead_count=Count('id'),
        converted=Count('id', filter=Q(status='closed_won'))
    ).order_by('-lead_count')

    return Response({
        'period': period(date_from, date_to),
        'sources': [
            {
                'source': row['source'],
                'lead_count': row['lead_count'],
                'converted': row['converted'],
                'conversion_rate': rate(row['converted'], row['lead_count']),
            }
            for row in rows
        ],
    })
