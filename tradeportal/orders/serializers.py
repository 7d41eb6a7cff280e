from decimal import Decimal

from rest_framework import serializers

from tradeportal.catalog.models import Product
from tradeportal.crm.models import Customer
from tradeportal.core.storage import signed_url
from . import workflow
from .models import Order, OrderItem, OrderStatusHistory, Invoice, Payment


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            'id', 'product', 'product_name', 'product_description', 'quantity', 'unit', 'unit_price',
            'total_price', 'specifications'
        ]


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    changed_by_username = serializers.CharField(source='changed_by.username', read_only=True, default=None)

    class Meta:
        model = OrderStatusHistory
        fields = ['id', 'old_status', 'new_status', 'notes', 'changed_by', 'changed_by_username', 'created_at']


class PaymentSerializer(serializers.ModelSerializer):
    recorded_by_username = serializers.CharField(source='recorded_by.username', read_only=True, default=None)

    class Meta:
        model = Payment
        fields = [
            'id', 'order', 'amount', 'payment_method', 'reference', 'notes', 'proof_file_url',
            'recorded_by', 'recorded_by_username', 'created_at'
        ]
        read_only_fields = fields


class InvoiceSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    customer_name = serializers.CharField(source='customer.company_name', read_only=True)
    download_url = serializers.SerializerMethodField()

    class Meta:
        model = Invoice
        fields = [
            'id', 'invoice_number', 'invoice_type', 'order', 'order_number', 'customer', 'customer_name',
            'status', 'subtotal', 'tax_amount', 'total_amount', 'currency', 'issue_date', 'due_date',
            'payment_terms', 'file_url', 'download_url', 'sent_at', 'paid_at', 'notes', 'created_at'
        ]
        read_only_fields = fields

    def get_download_url(self, obj):
        return signed_url(obj.file_url, request=self.context.get('request'))


class OrderListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.company_name', read_only=True)
    quote_number = serializers.CharField(source='quote.quote_number', read_only=True, default=None)

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'quote', 'quote_number', 'customer', 'customer_name', 'status', 'currency',
            'total_amount', 'amount_paid', 'tracking_number', 'estimated_delivery_date', 'created_at'
        ]


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    status_history = OrderStatusHistorySerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.company_name', read_only=True)
    quote_number = serializers.CharField(source='quote.quote_number', read_only=True, default=None)
    balance_due = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    allowed_transitions = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'quote', 'quote_number', 'customer', 'customer_name', 'status', 'currency',
            'subtotal', 'tax_amount', 'shipping_fee', 'total_amount', 'payment_method', 'payment_reference',
            'amount_paid', 'balance_due', 'manual_confirmation_method', 'manual_confirmation_notes',
            'delivery_address', 'carrier', 'tracking_number', 'estimated_delivery_date', 'delivered_at',
            'notes', 'allowed_transitions', 'items', 'status_history', 'payments', 'created_by',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_allowed_transitions(self, obj):
        return workflow.allowed_transitions(obj)


class OrderItemInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all(), required=False, allow_null=True)
    product_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    product_description = serializers.CharField(required=False, allow_blank=True, default='')
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    unit = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.00'))
    specifications = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        product = attrs.get('product')
        if not attrs.get('product_name'):
            if product is None:
                raise serializers.ValidationError("Each item needs a product or a product name")
            attrs['product_name'] = product.name
        if product is not None and not attrs.get('unit'):
            attrs['unit'] = product.unit
        return attrs


class OrderCreateSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())
    currency = serializers.CharField(max_length=3, required=False, default='USD')
    tax_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.00'), required=False, default=Decimal('0.00'))
    shipping_fee = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.00'), required=False, default=Decimal('0.00'))
    payment_method = serializers.ChoiceField(choices=Order.PAYMENT_METHOD_CHOICES, required=False, allow_null=True, default=None)
    delivery_address = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    items = OrderItemInputSerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("An order needs at least one item")
        return value


class StatusChangeSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class DeliveryUpdateSerializer(serializers.Serializer):
    delivery_address = serializers.CharField(required=False, allow_blank=True)
    carrier = serializers.CharField(max_length=100, required=False, allow_blank=True)
    tracking_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    estimated_delivery_date = serializers.DateField(required=False, allow_null=True)


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    payment_method = serializers.ChoiceField(choices=Order.PAYMENT_METHOD_CHOICES)
    reference = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    proof_file_url = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class InvoiceGenerateSerializer(serializers.Serializer):
    invoice_type = serializers.ChoiceField(choices=Invoice.INVOICE_TYPE_CHOICES)


class PublicOrderSerializer(serializers.ModelSerializer):
    """Order as shown behind a tracking link"""
    items = OrderItemSerializer(many=True, read_only=True)
    status_history = serializers.SerializerMethodField()
    customer_name = serializers.CharField(source='customer.company_name', read_only=True)

    class Meta:
        model = Order
        fields = [
            'order_number', 'customer_name', 'status', 'currency', 'total_amount', 'carrier',
            'tracking_number', 'estimated_delivery_date', 'delivered_at', 'items', 'status_history',
            'created_at'
        ]

    def get_status_history(self, obj):
        return [
            {'status': entry.new_status, 'notes': entry.notes, 'created_at': entry.created_at}
            for entry in obj.status_history.all()
        ]
