from decimal import Decimal

from rest_framework import serializers

from tradeportal.catalog.models import Product
from tradeportal.crm.models import Customer, Lead
from tradeportal.core.storage import signed_url
from tradeportal.orders.models import Order
from . import workflow
from .models import Quote, QuoteItem, QuoteRequest, QuoteRequestItem, QuoteRevision, QuoteApproval


class QuoteItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuoteItem
        fields = [
            'id', 'product', 'product_name', 'product_description', 'quantity', 'unit', 'unit_price',
            'total_price', 'specifications', 'sort_order'
        ]
        read_only_fields = ['total_price', 'sort_order']


class QuoteItemInputSerializer(serializers.Serializer):
    """Line item as sent by the quote wizard and editor"""
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all(), required=False, allow_null=True)
    product_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    product_description = serializers.CharField(required=False, allow_blank=True, default='')
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    unit = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.00'), required=False, default=Decimal('0.00'))
    specifications = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        product = attrs.get('product')
        if not attrs.get('product_name'):
            if product is None:
                raise serializers.ValidationError("Each item needs a product or a product name")
            attrs['product_name'] = product.name
        if product is not None:
            if not attrs.get('unit'):
                attrs['unit'] = product.unit
            if not attrs.get('product_description'):
                attrs['product_description'] = product.description
        return attrs


class QuoteListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.company_name', read_only=True, default=None)
    item_count = serializers.IntegerField(source='items.count', read_only=True)
    is_trashed = serializers.BooleanField(read_only=True)

    class Meta:
        model = Quote
        fields = [
            'id', 'quote_number', 'title', 'customer', 'customer_name', 'customer_email', 'status',
            'origin_type', 'currency', 'total_amount', 'valid_until', 'revision_number', 'item_count',
            'sent_at', 'is_trashed', 'deleted_at', 'created_at', 'updated_at'
        ]


class QuoteSerializer(serializers.ModelSerializer):
    items = QuoteItemSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.company_name', read_only=True, default=None)
    lead_name = serializers.CharField(source='lead.contact_name', read_only=True, default=None)
    request_number = serializers.CharField(source='linked_quote_request.request_number', read_only=True, default=None)
    approved_by_username = serializers.CharField(source='approved_by.username', read_only=True, default=None)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)
    is_trashed = serializers.BooleanField(read_only=True)
    is_editable = serializers.SerializerMethodField()
    allowed_transitions = serializers.SerializerMethodField()
    pdf_url = serializers.SerializerMethodField()
    order_id = serializers.SerializerMethodField()

    class Meta:
        model = Quote
        fields = [
            'id', 'quote_number', 'title', 'description', 'customer', 'customer_name', 'customer_email',
            'lead', 'lead_name', 'linked_quote_request', 'request_number', 'origin_type', 'status',
            'currency', 'subtotal', 'tax_rate', 'tax_amount', 'shipping_fee', 'total_amount', 'valid_until',
            'notes', 'terms', 'final_file_url', 'pdf_url', 'pdf_generated_at', 'submitted_for_review_at',
            'approved_by', 'approved_by_username', 'approved_at', 'sent_at', 'responded_at',
            'customer_response_notes', 'revision_number', 'is_trashed', 'deleted_at', 'status_before_delete',
            'is_editable', 'allowed_transitions', 'order_id', 'items', 'created_by', 'created_by_username',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_is_editable(self, obj):
        return workflow.is_editable(obj)

    def get_allowed_transitions(self, obj):
        return workflow.allowed_transitions(obj)

    def get_pdf_url(self, obj):
        return signed_url(obj.final_file_url, request=self.context.get('request'))

    def get_order_id(self, obj):
        return Order.objects.filter(quote=obj).values_list('id', flat=True).first()


class QuoteCreateSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all(), required=False, allow_null=True)
    customer_email = serializers.EmailField(required=False, allow_blank=True, default='')
    lead = serializers.PrimaryKeyRelatedField(queryset=Lead.objects.all(), required=False, allow_null=True)
    title = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    description = serializers.CharField(required=False, allow_blank=True, default='')
    currency = serializers.CharField(max_length=3, required=False, default='USD')
    valid_until = serializers.DateField(required=False, allow_null=True)
    apply_tax = serializers.BooleanField(required=False, default=False)
    shipping_fee = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.00'), required=False, default=Decimal('0.00'))
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    terms = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    origin_type = serializers.ChoiceField(choices=Quote.ORIGIN_CHOICES, required=False, default='manual')
    items = QuoteItemInputSerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("A quote needs at least one item")
        return value

    def validate(self, attrs):
        if not attrs.get('customer') and not attrs.get('customer_email'):
            raise serializers.ValidationError("Select a customer or enter a customer email")
        return attrs


class QuoteUpdateSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all(), required=False, allow_null=True)
    customer_email = serializers.EmailField(required=False, allow_blank=True)
    lead = serializers.PrimaryKeyRelatedField(queryset=Lead.objects.all(), required=False, allow_null=True)
    title = serializers.CharField(max_length=255, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    currency = serializers.CharField(max_length=3, required=False)
    valid_until = serializers.DateField(required=False, allow_null=True)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=Decimal('0.00'), max_value=Decimal('100.00'), required=False)
    shipping_fee = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.00'), required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    terms = serializers.CharField(required=False, allow_blank=True)
    items = QuoteItemInputSerializer(many=True, required=False)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("A quote needs at least one item")
        return value


class QuoteSendSerializer(serializers.Serializer):
    message = serializers.CharField(required=False, allow_blank=True, default='')


class CustomerResponseSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=['accepted', 'rejected'])
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class ConvertToOrderSerializer(serializers.Serializer):
    confirmation_method = serializers.ChoiceField(choices=Order.CONFIRMATION_METHOD_CHOICES)
    confirmation_notes = serializers.CharField(required=False, allow_blank=True, default='')
    payment_method = serializers.ChoiceField(choices=Order.PAYMENT_METHOD_CHOICES, required=False, allow_null=True, default=None)
    initial_status = serializers.ChoiceField(
        choices=['pending_payment', 'payment_received', 'processing'], required=False, default='pending_payment'
    )


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class LinkRequestSerializer(serializers.Serializer):
    request_number = serializers.CharField(max_length=50)


class MagicLinkResponseSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=['approve', 'reject'])
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class PublicQuoteSerializer(serializers.ModelSerializer):
    """What a customer sees behind an approval link"""
    items = QuoteItemSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.company_name', read_only=True, default=None)
    pdf_url = serializers.SerializerMethodField()

    class Meta:
        model = Quote
        fields = [
            'quote_number', 'title', 'description', 'customer_name', 'status', 'currency', 'subtotal',
            'tax_rate', 'tax_amount', 'shipping_fee', 'total_amount', 'valid_until', 'notes', 'terms',
            'revision_number', 'pdf_url', 'items', 'sent_at'
        ]

    def get_pdf_url(self, obj):
        return signed_url(obj.final_file_url, request=self.context.get('request'))


class QuoteRequestItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuoteRequestItem
        fields = ['id', 'product', 'product_name', 'quantity', 'unit', 'specifications', 'preferred_grade']


class QuoteRequestSerializer(serializers.ModelSerializer):
    items = QuoteRequestItemSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.company_name', read_only=True, default=None)
    contact_email = serializers.CharField(read_only=True)
    quote_ids = serializers.SerializerMethodField()

    class Meta:
        model = QuoteRequest
        fields = [
            'id', 'request_number', 'customer', 'customer_name', 'title', 'message', 'request_type', 'status',
            'urgency', 'lead_company_name', 'lead_contact_name', 'lead_email', 'lead_phone', 'lead_country',
            'lead_industry', 'contact_email', 'admin_notes', 'submitted_by', 'items', 'quote_ids',
            'created_at', 'updated_at'
        ]
        read_only_fields = [
            'request_number', 'customer', 'request_type', 'submitted_by', 'created_at', 'updated_at'
        ]

    def get_quote_ids(self, obj):
        return list(obj.quotes.filter(deleted_at__isnull=True).values_list('id', flat=True))


class QuoteRequestUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuoteRequest
        fields = ['status', 'urgency', 'admin_notes']


class QuoteRevisionSerializer(serializers.ModelSerializer):
    quote_number = serializers.CharField(source='quote.quote_number', read_only=True)

    class Meta:
        model = QuoteRevision
        fields = [
            'id', 'quote', 'quote_number', 'customer', 'requested_by', 'status', 'request_type',
            'requested_changes', 'customer_note', 'admin_note', 'revision_number', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'quote', 'customer', 'requested_by', 'request_type', 'requested_changes', 'customer_note',
            'revision_number', 'created_at', 'updated_at'
        ]


class RevisionRequestSerializer(serializers.Serializer):
    request_type = serializers.ChoiceField(choices=QuoteRevision.REQUEST_TYPE_CHOICES, default='other')
    requested_changes = serializers.JSONField(required=False, default=dict)
    customer_note = serializers.CharField(required=False, allow_blank=True, default='')


class QuoteApprovalSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuoteApproval
        fields = ['id', 'quote', 'customer_email', 'decision', 'customer_notes', 'ip_address', 'created_at']
