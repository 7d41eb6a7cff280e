from decimal import Decimal

from rest_framework import serializers

from tradeportal.catalog.models import Product
from tradeportal.core.models import User
from tradeportal.core.storage import signed_url
from tradeportal.orders.models import Order
from tradeportal.orders.serializers import OrderItemSerializer
from tradeportal.quotes.models import Quote, QuoteRequest
from tradeportal.quotes.serializers import QuoteItemSerializer, QuoteRequestItemSerializer
from .models import Cart, CartItem


class CartItemSerializer(serializers.ModelSerializer):
    product_sku = serializers.CharField(source='product.sku', read_only=True, default=None)
    product_image_url = serializers.CharField(source='product.image_url', read_only=True, default=None)

    class Meta:
        model = CartItem
        fields = [
            'id', 'product', 'product_sku', 'product_image_url', 'product_name', 'quantity', 'unit',
            'specifications', 'preferred_grade', 'created_at'
        ]
        read_only_fields = ['product', 'product_name', 'created_at']

    def validate_quantity(self, value):
        if value <= 0:
            raise serializers.ValidationError("Quantity must be greater than zero")
        return value


class CartSerializer(serializers.ModelSerializer):
    items = CartItemSerializer(many=True, read_only=True)
    item_count = serializers.IntegerField(source='items.count', read_only=True)

    class Meta:
        model = Cart
        fields = ['id', 'items', 'item_count', 'updated_at']


class CartItemAddSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.filter(is_active=True), required=False, allow_null=True)
    product_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    unit = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')
    specifications = serializers.CharField(required=False, allow_blank=True, default='')
    preferred_grade = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if not attrs.get('product') and not attrs.get('product_name'):
            raise serializers.ValidationError("Choose a product or enter a product name")
        return attrs


class CartSubmitSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    message = serializers.CharField(required=False, allow_blank=True, default='')
    urgency = serializers.ChoiceField(choices=QuoteRequest.URGENCY_CHOICES, required=False, default='medium')


class PortalQuoteRequestSerializer(serializers.ModelSerializer):
    items = QuoteRequestItemSerializer(many=True, read_only=True)

    class Meta:
        model = QuoteRequest
        fields = ['id', 'request_number', 'title', 'message', 'status', 'urgency', 'items', 'created_at']


class PortalQuoteSerializer(serializers.ModelSerializer):
    items = QuoteItemSerializer(many=True, read_only=True)
    pdf_url = serializers.SerializerMethodField()
    can_respond = serializers.SerializerMethodField()

    class Meta:
        model = Quote
        fields = [
            'id', 'quote_number', 'title', 'description', 'status', 'currency', 'subtotal', 'tax_rate',
            'tax_amount', 'shipping_fee', 'total_amount', 'valid_until', 'notes', 'terms', 'revision_number',
            'sent_at', 'responded_at', 'customer_response_notes', 'pdf_url', 'can_respond', 'items'
        ]

    def get_pdf_url(self, obj):
        return signed_url(obj.final_file_url, request=self.context.get('request'))

    def get_can_respond(self, obj):
        return obj.status == 'sent'


class PortalQuoteResponseSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=['accepted', 'rejected'])
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class PortalOrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    quote_number = serializers.CharField(source='quote.quote_number', read_only=True, default=None)
    balance_due = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    status_history = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'quote_number', 'status', 'currency', 'subtotal', 'tax_amount',
            'shipping_fee', 'total_amount', 'amount_paid', 'balance_due', 'delivery_address', 'carrier',
            'tracking_number', 'estimated_delivery_date', 'delivered_at', 'items', 'status_history',
            'created_at'
        ]

    def get_status_history(self, obj):
        if not self.context.get('include_history'):
            return None
        return [
            {'status': entry.new_status, 'notes': entry.notes, 'created_at': entry.created_at}
            for entry in obj.status_history.all()
        ]


class ProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'phone', 'company_name', 'country']
        # E-mail changes go through staff
        read_only_fields = ['id', 'username', 'email']
