import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError, AuthenticationFailed
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.core.files.storage import default_storage
from django.http import FileResponse
from django.shortcuts import get_object_or_404
from django.db.models import Q
from django.utils.dateparse import parse_date

from .exceptions import TradePortalError, error_response
from .models import Setting, AuditLog
from .permissions import (
    IsAdminRole, IsStaffRole, ROLE_CUSTOMER, get_user_role, set_user_role,
)
from .serializers import (
    UserSerializer, UserCreateSerializer, RoleChangeSerializer,
    SettingSerializer, AuditLogSerializer
)
from .storage import resolve_signed_path
from .utils import create_audit_log

User = get_user_model()
logger = logging.getLogger(__name__)


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        data['user'] = UserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['role'] = get_user_role(user)
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that answers 401 instead of 500 when the user was deleted"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except (ObjectDoesNotExist, User.DoesNotExist):
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """Customer self sign-up"""
    serializer = UserCreateSerializer(data=request.data)
    if serializer.is_valid():
        user = serializer.save()
        set_user_role(user, ROLE_CUSTOMER)
        create_audit_log(
            request=request,
            user=user,
            event_type='user_signup',
            action='create',
            resource_type='User',
            resource_id=user.id,
            resource_reference=user.email,
        )
        token = CustomTokenObtainPairSerializer.get_token(user)
        return Response({
            'user': UserSerializer(user).data,
            'access': str(token.access_token),
            'refresh': str(token),
        }, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Current user with the capability flags the UI uses to show or hide sections"""
    user = request.user
    user_data = UserSerializer(user).data
    role = get_user_role(user)

    user_data['is_admin'] = role == 'admin'
    user_data['is_staff_member'] = role in ('admin', 'staff')
    user_data['can_access_crm'] = role in ('admin', 'staff')
    user_data['can_access_settings'] = role == 'admin'
    user_data['can_access_portal'] = role == 'customer'
    return Response(user_data)


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_list_create(request):
    """List all users or create a new user"""
    if request.method == 'GET':
        users = User.objects.all().order_by('username')
        role = request.query_params.get('role')
        if role == 'admin':
            users = users.filter(Q(is_superuser=True) | Q(groups__name='Admin')).distinct()
        elif role == 'staff':
            users = users.filter(groups__name='Staff')
        elif role == 'customer':
            users = users.filter(is_superuser=False).exclude(groups__name__in=['Admin', 'Staff'])
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            role_serializer = RoleChangeSerializer(data={'role': request.data.get('role', ROLE_CUSTOMER)})
            role_serializer.is_valid(raise_exception=True)
            set_user_role(user, role_serializer.validated_data['role'])
            create_audit_log(
                request=request,
                event_type='data_create',
                action='create',
                resource_type='User',
                resource_id=user.id,
                resource_reference=user.username,
                event_data={'role': role_serializer.validated_data['role']},
            )
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_detail(request, pk):
    """Retrieve, update or delete a user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        serializer = UserSerializer(user)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = UserSerializer(user, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user.pk == request.user.pk:
            return Response({'error': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(
            request=request,
            event_type='data_delete',
            action='delete',
            resource_type='User',
            resource_id=user.id,
            resource_reference=user.username,
            severity='high',
        )
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_change_role(request, pk):
    """Assign admin / staff / customer role"""
    user = get_object_or_404(User, pk=pk)
    serializer = RoleChangeSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    new_role = serializer.validated_data['role']
    old_role = get_user_role(user)
    if user.pk == request.user.pk and new_role != 'admin':
        return Response({'error': 'You cannot remove your own admin role'}, status=status.HTTP_400_BAD_REQUEST)

    set_user_role(user, new_role)
    create_audit_log(
        request=request,
        event_type='role_changed',
        action='update',
        resource_type='User',
        resource_id=user.id,
        resource_reference=user.username,
        changes={'before': {'role': old_role}, 'after': {'role': new_role}},
        severity='high',
    )
    logger.info(f"Role of user {user.username} changed from {old_role} to {new_role} by {request.user.username}")
    return Response(UserSerializer(user).data)


# Setting views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def setting_list_create(request):
    """List all settings or create a new setting"""
    if request.method == 'GET':
        settings_qs = Setting.objects.all().order_by('key')
        serializer = SettingSerializer(settings_qs, many=True)
        return Response(serializer.data)
    else:
        serializer = SettingSerializer(data=request.data)
        if serializer.is_valid():
            setting = serializer.save()
            create_audit_log(
                request=request,
                event_type='settings_changed',
                action='create',
                resource_type='Setting',
                resource_id=setting.id,
                resource_reference=setting.key,
                changes={'before': None, 'after': {'value': setting.value}},
                severity='medium',
            )
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def setting_detail(request, pk):
    """Retrieve, update or delete a setting"""
    setting = get_object_or_404(Setting, pk=pk)

    if request.method == 'GET':
        serializer = SettingSerializer(setting)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        old_value = setting.value
        serializer = SettingSerializer(setting, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            setting = serializer.save()
            create_audit_log(
                request=request,
                event_type='settings_changed',
                action='update',
                resource_type='Setting',
                resource_id=setting.id,
                resource_reference=setting.key,
                changes={'before': {'value': old_value}, 'after': {'value': setting.value}},
                severity='medium',
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(
            request=request,
            event_type='settings_changed',
            action='delete',
            resource_type='Setting',
            resource_id=setting.id,
            resource_reference=setting.key,
            changes={'before': {'value': setting.value}, 'after': None},
        )
        setting.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


def filter_audit_logs(queryset, params):
    """Apply the audit log query-string filters shared by the list and trail endpoints"""
    for field in ('event_type', 'resource_type', 'resource_id', 'severity'):
        value = params.get(field)
        if value:
            queryset = queryset.filter(**{field: value})

    user_filter = params.get('user')
    if user_filter:
        queryset = queryset.filter(user_id=user_filter)

    date_from = parse_date(params.get('date_from') or '')
    date_to = parse_date(params.get('date_to') or '')
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    search = params.get('search')
    if search:
        queryset = queryset.filter(
            Q(resource_reference__icontains=search) |
            Q(user__username__icontains=search) |
            Q(event_type__icontains=search)
        )
    return queryset


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = filter_audit_logs(AuditLog.objects.select_related('user'), request.query_params)
    try:
        limit = min(int(request.query_params.get('limit', 200)), 1000)
    except ValueError:
        limit = 200
    serializer = AuditLogSerializer(queryset.order_by('-created_at')[:limit], many=True)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)
    serializer = AuditLogSerializer(audit_log)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def global_search(request):
    """Search quotes, orders, customers and leads from the CRM header"""
    query = request.query_params.get('q', '').strip()

    if not query:
        return Response({
            'quotes': [],
            'orders': [],
            'customers': [],
            'leads': [],
        })

    from tradeportal.crm.models import Customer, Lead
    from tradeportal.quotes.models import Quote
    from tradeportal.orders.models import Order

    results = {}

    quotes = Quote.objects.active().filter(
        Q(quote_number__icontains=query) |
        Q(title__icontains=query)
    ).select_related('customer')[:10]
    results['quotes'] = [
        {
            'id': quote.id,
            'quote_number': quote.quote_number,
            'title': quote.title,
            'status': quote.status,
            'customer_name': quote.customer.company_name if quote.customer else None,
        }
        for quote in quotes
    ]

    orders = Order.objects.filter(
        Q(order_number__icontains=query) |
        Q(tracking_number__icontains=query)
    ).select_related('customer')[:10]
    results['orders'] = [
        {
            'id': order.id,
            'order_number': order.order_number,
            'status': order.status,
            'customer_name': order.customer.company_name,
        }
        for order in orders
    ]

    customers = Customer.objects.filter(
        Q(company_name__icontains=query) |
        Q(contact_name__icontains=query) |
        Q(email__icontains=query)
    )[:10]
    results['customers'] = [
        {'id': c.id, 'company_name': c.company_name, 'contact_name': c.contact_name, 'email': c.email}
        for c in customers
    ]

    leads = Lead.objects.filter(
        Q(company_name__icontains=query) |
        Q(contact_name__icontains=query) |
        Q(email__icontains=query)
    )[:10]
    results['leads'] = [
        {'id': lead.id, 'company_name': lead.company_name, 'contact_name': lead.contact_name, 'status': lead.status}
        for lead in leads
    ]

    return Response(results)


@api_view(['GET'])
@permission_classes([AllowAny])
def signed_file_download(request, token):
    """Stream a stored document; the signed token is the credential"""
    try:
        path = resolve_signed_path(token)
    except TradePortalError as e:
        return error_response(e)

    if not default_storage.exists(path):
        return Response({'error': 'File not found'}, status=status.HTTP_404_NOT_FOUND)
    return FileResponse(default_storage.open(path, 'rb'), as_attachment=False, filename=path.rsplit('/', 1)[-1])
