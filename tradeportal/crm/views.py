import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from django.conf import settings
from django.db.models import Q
from django.shortcuts import get_object_or_404

from tradeportal.core import functions
from tradeportal.core.exceptions import TradePortalError, error_response
from tradeportal.core.permissions import IsStaffRole
from tradeportal.core.utils import create_audit_log
from .models import Customer, Lead, Activity
from .serializers import (
    CustomerSerializer, CustomerDetailSerializer, LeadSerializer, LeadCaptureSerializer,
    LeadConversionSerializer, ActivitySerializer
)
from .services import compute_lead_score, convert_lead

logger = logging.getLogger(__name__)


# Customer views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def customer_list_create(request):
    """List all customers or create a new customer"""
    if request.method == 'GET':
        queryset = Customer.objects.all().order_by('-created_at')
        search = request.query_params.get('search', None)
        customer_status = request.query_params.get('status', None)
        priority = request.query_params.get('priority', None)
        if search:
            queryset = queryset.filter(
                Q(company_name__icontains=search) |
                Q(contact_name__icontains=search) |
                Q(email__icontains=search) |
                Q(phone__icontains=search)
            )
        if customer_status:
            queryset = queryset.filter(customer_status=customer_status)
        if priority:
            queryset = queryset.filter(priority=priority)
        serializer = CustomerSerializer(queryset, many=True)
        return Response(serializer.data)
    else:
        serializer = CustomerSerializer(data=request.data)
        if serializer.is_valid():
            customer = serializer.save(created_by=request.user)
            create_audit_log(
                request=request,
                event_type='data_create',
                action='create',
                resource_type='Customer',
                resource_id=customer.id,
                resource_reference=customer.company_name,
            )
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def customer_detail(request, pk):
    """Retrieve, update or delete a customer"""
    customer = get_object_or_404(Customer, pk=pk)

    if request.method == 'GET':
        serializer = CustomerDetailSerializer(customer)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = CustomerSerializer(customer, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(
                request=request,
                event_type='data_update',
                action='update',
                resource_type='Customer',
                resource_id=customer.id,
                resource_reference=customer.company_name,
                event_data={'fields': sorted(request.data.keys())},
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if customer.orders.exists():
            return Response(
                {'error': 'Customer has orders and cannot be deleted. Mark it inactive instead.'},
                status=status.HTTP_409_CONFLICT
            )
        create_audit_log(
            request=request,
            event_type='data_delete',
            action='delete',
            resource_type='Customer',
            resource_id=customer.id,
            resource_reference=customer.company_name,
        )
        customer.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Lead views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def lead_list_create(request):
    """List leads with pipeline filters or create a new lead"""
    if request.method == 'GET':
        queryset = Lead.objects.select_related('assigned_to', 'customer').order_by('-created_at')
        for param in ('status', 'source'):
            value = request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{param: value})
        assigned_to = request.query_params.get('assigned_to')
        if assigned_to:
            queryset = queryset.filter(assigned_to_id=assigned_to)
        search = request.query_params.get('search')
        if search:
            queryset = queryset.filter(
                Q(contact_name__icontains=search) |
                Q(company_name__icontains=search) |
                Q(email__icontains=search)
            )
        serializer = LeadSerializer(queryset, many=True)
        return Response(serializer.data)
    else:
        serializer = LeadSerializer(data=request.data)
        if serializer.is_valid():
            lead = serializer.save()
            lead.lead_score = compute_lead_score(lead)
            lead.save(update_fields=['lead_score'])
            create_audit_log(
                request=request,
                event_type='data_create',
                action='create',
                resource_type='Lead',
                resource_id=lead.id,
                resource_reference=lead.company_name or lead.contact_name,
            )
            return Response(LeadSerializer(lead).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def lead_detail(request, pk):
    """Retrieve, update or delete a lead"""
    lead = get_object_or_404(Lead, pk=pk)

    if request.method == 'GET':
        serializer = LeadSerializer(lead)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        old_status = lead.status
        serializer = LeadSerializer(lead, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            lead = serializer.save()
            lead.lead_score = compute_lead_score(lead)
            lead.save(update_fields=['lead_score'])
            changes = {}
            if old_status != lead.status:
                changes = {'before': {'status': old_status}, 'after': {'status': lead.status}}
            create_audit_log(
                request=request,
                event_type='data_update',
                action='update',
                resource_type='Lead',
                resource_id=lead.id,
                resource_reference=lead.company_name or lead.contact_name,
                changes=changes,
            )
            return Response(LeadSerializer(lead).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(
            request=request,
            event_type='data_delete',
            action='delete',
            resource_type='Lead',
            resource_id=lead.id,
            resource_reference=lead.company_name or lead.contact_name,
        )
        lead.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def lead_convert(request, pk):
    """Convert a lead into a customer"""
    lead = get_object_or_404(Lead, pk=pk)
    serializer = LeadConversionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        customer = convert_lead(
            lead,
            request.user,
            industry=serializer.validated_data.get('industry'),
            priority=serializer.validated_data.get('priority'),
            expected_value=serializer.validated_data.get('expected_value'),
            notes=serializer.validated_data.get('notes', ''),
            request=request,
        )
    except TradePortalError as e:
        return error_response(e)

    lead.refresh_from_db()
    return Response({
        'lead': LeadSerializer(lead).data,
        'customer': CustomerSerializer(customer).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([AllowAny])
def lead_capture(request):
    """Contact form submission from the public site"""
    serializer = LeadCaptureSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    lead = Lead(
        contact_name=data['contact_name'],
        company_name=data.get('company_name', ''),
        email=data['email'],
        phone=data.get('phone', ''),
        country=data.get('country', ''),
        description=data.get('message', ''),
        source='website',
        status='new',
    )
    lead.lead_score = compute_lead_score(lead)
    lead.save()

    functions.invoke_function_best_effort(functions.SEND_EMAIL, {
        'type': 'new_lead_admin',
        'to': settings.ADMIN_NOTIFICATION_EMAIL,
        'data': {
            'lead_id': lead.id,
            'contact_name': lead.contact_name,
            'company_name': lead.company_name,
            'email': lead.email,
            'message': lead.description,
        },
    })
    logger.info(f"Captured website lead {lead.id} ({lead.email})")
    return Response({'id': lead.id, 'message': 'Thank you, our team will contact you shortly.'},
                    status=status.HTTP_201_CREATED)


# Activity views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def activity_list_create(request):
    """List activities for a customer or lead, or log a new one"""
    if request.method == 'GET':
        queryset = Activity.objects.select_related('created_by')
        customer_id = request.query_params.get('customer')
        lead_id = request.query_params.get('lead')
        if customer_id:
            queryset = queryset.filter(customer_id=customer_id)
        if lead_id:
            queryset = queryset.filter(lead_id=lead_id)
        serializer = ActivitySerializer(queryset.order_by('-created_at'), many=True)
        return Response(serializer.data)
    else:
        serializer = ActivitySerializer(data=request.data)
        if serializer.is_valid():
            serializer.save(created_by=request.user)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
