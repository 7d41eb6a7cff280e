from rest_framework import serializers
from tradeportal.core.permissions import ROLE_CUSTOMER, get_user_role
from .models import Customer, Lead, Activity


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = [
            'id', 'company_name', 'contact_name', 'email', 'phone', 'country', 'industry', 'address',
            'customer_status', 'priority', 'annual_revenue', 'notes', 'user', 'created_by',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['created_by', 'created_at', 'updated_at']

    def validate_user(self, value):
        if value is not None and get_user_role(value) != ROLE_CUSTOMER:
            raise serializers.ValidationError("Only customer accounts can be linked to a customer")
        return value


class CustomerDetailSerializer(CustomerSerializer):
    quote_count = serializers.SerializerMethodField()
    order_count = serializers.SerializerMethodField()
    total_order_value = serializers.SerializerMethodField()

    class Meta(CustomerSerializer.Meta):
        fields = CustomerSerializer.Meta.fields + ['quote_count', 'order_count', 'total_order_value']

    def get_quote_count(self, obj):
        return obj.quotes.filter(deleted_at__isnull=True).count()

    def get_order_count(self, obj):
        return obj.orders.count()

    def get_total_order_value(self, obj):
        from django.db.models import Sum
        total = obj.orders.exclude(status='cancelled').aggregate(total=Sum('total_amount'))['total']
        return str(total or '0.00')


class LeadSerializer(serializers.ModelSerializer):
    assigned_to_username = serializers.CharField(source='assigned_to.username', read_only=True, default=None)
    customer_name = serializers.CharField(source='customer.company_name', read_only=True, default=None)

    class Meta:
        model = Lead
        fields = [
            'id', 'contact_name', 'company_name', 'email', 'phone', 'country', 'title', 'description',
            'source', 'status', 'lead_score', 'value', 'currency', 'customer', 'customer_name',
            'assigned_to', 'assigned_to_username', 'notes', 'converted_at', 'created_at', 'updated_at'
        ]
        read_only_fields = ['lead_score', 'converted_at', 'created_at', 'updated_at']

    def validate(self, attrs):
        email = attrs.get('email', getattr(self.instance, 'email', ''))
        phone = attrs.get('phone', getattr(self.instance, 'phone', ''))
        if not email and not phone:
            raise serializers.ValidationError("A lead needs an email or a phone number")
        return attrs


class LeadCaptureSerializer(serializers.Serializer):
    """Contact form on the public site"""
    contact_name = serializers.CharField(max_length=200)
    company_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True)
    country = serializers.CharField(max_length=100, required=False, allow_blank=True)
    message = serializers.CharField(required=False, allow_blank=True)


class LeadConversionSerializer(serializers.Serializer):
    industry = serializers.CharField(max_length=100, required=False, allow_blank=True)
    priority = serializers.ChoiceField(choices=Customer.PRIORITY_CHOICES, required=False, default='medium')
    expected_value = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class ActivitySerializer(serializers.ModelSerializer):
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = Activity
        fields = [
            'id', 'customer', 'lead', 'activity_type', 'subject', 'description', 'status', 'due_date',
            'created_by', 'created_by_username', 'created_at'
        ]
        read_only_fields = ['created_by', 'created_at']

    def validate(self, attrs):
        if not attrs.get('customer') and not attrs.get('lead'):
            raise serializers.ValidationError("An activity must belong to a customer or a lead")
        return attrs
